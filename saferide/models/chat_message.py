"""Chat Message Model - Defines the chat message schema for match chat rooms."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from saferide.utils.timezone_utils import utc_now


class MessageType(str, Enum):
    """Type of chat message."""
    TEXT = "text"      # Regular user message
    SYSTEM = "system"  # System announcement (formed, left, confirmed)


class ChatMessage(BaseModel):
    """
    Chat message model.

    Append-only chat for a match. The chat room id equals the match id.
    Only system announcements are written by this service; user messages
    arrive through the realtime chat transport.
    """
    id: str = Field(..., description="Unique message ID")
    match_id: str = Field(..., description="Parent match / chat room ID")
    sender_id: Optional[str] = Field(None, description="Sender user ID, None for system")
    sender_name: str = Field(default="System")
    message: str
    type: MessageType = Field(default=MessageType.TEXT)
    timestamp: datetime = Field(default_factory=utc_now)

    class Config:
        use_enum_values = True
