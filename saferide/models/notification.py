"""
Notification Model - Defines the notification schema for in-app and push
notifications.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from saferide.utils.timezone_utils import utc_now


class NotificationType(str, Enum):
    """Type of notification."""

    MATCH_FOUND = "match_found"
    MATCH_CONFIRMED = "match_confirmed"
    MATCH_EXPIRED = "match_expired"
    MATCH_CANCELLED = "match_cancelled"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    CONFIRMATION_REMINDER = "confirmation_reminder"
    PARTICIPANT_LEFT = "participant_left"
    RIDE_STARTED = "ride_started"
    RIDE_COMPLETED = "ride_completed"
    SYSTEM = "system"


class Notification(BaseModel):
    """
    Notification model.

    Stores in-app notifications. Push notifications are sent via FCM
    but also stored here for the notification center.

    Fields:
    - id: Unique notification ID
    - user_id: Target user
    - type: Notification type for UI rendering
    - title / body: Display text
    - data: Additional data (e.g., match_id)
    - is_read: Whether user has read the notification
    """

    id: str = Field(..., description="Unique notification ID")
    user_id: str = Field(..., description="Target user ID")
    type: NotificationType
    title: str
    body: str
    data: Optional[dict] = Field(None, description="Additional data")
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        use_enum_values = True
