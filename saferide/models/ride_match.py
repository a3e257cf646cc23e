"""Ride Match Model - Defines the match schema and matching value types."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from saferide.models.ride_request import Location, RideRequest
from saferide.models.user import UserProfile
from saferide.utils.timezone_utils import utc_now


class MatchStatus(str, Enum):
    """Status of a ride match."""
    PENDING = "pending"        # Waiting for every participant to confirm
    CONFIRMED = "confirmed"    # All confirmed, final cost locked
    RIDING = "riding"          # Ride in progress
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_MATCH_STATUSES = (MatchStatus.PENDING, MatchStatus.CONFIRMED, MatchStatus.RIDING)


class MatchPoint(BaseModel):
    """Meeting or drop-off point (centroid)."""
    latitude: float
    longitude: float
    address: str


class Participant(BaseModel):
    """Snapshot of a participant at formation time."""
    user_id: str
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None
    profile_image_url: Optional[str] = None
    pickup_location: Location
    dropoff_location: Location
    seats: int = Field(default=1, ge=1, le=4)
    is_student_verified: bool = False
    department: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "A rider"


class RideMatch(BaseModel):
    """
    Ride match model.

    Formed from two or more ride requests. ``request_ids`` and
    ``participants`` are index-aligned. ``version`` increments on every
    membership or confirmation change and guards concurrent writers.
    """
    id: str
    request_ids: list[str]
    participants: list[Participant]
    meeting_point: MatchPoint
    dropoff_point: MatchPoint
    departure_time: datetime
    estimated_total_cost: float
    cost_per_person: float
    final_cost_per_person: Optional[float] = None
    total_seats: int
    chat_room_id: str
    status: MatchStatus = Field(default=MatchStatus.PENDING)
    confirmations: list[str] = Field(default_factory=list)
    cancellation_reason: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        use_enum_values = True

    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids()

    def all_confirmed(self) -> bool:
        return set(self.participant_ids()) <= set(self.confirmations)


class MatchCreate(BaseModel):
    """Data required to form a match from selected requests."""
    request_ids: list[str] = Field(..., min_length=2)


# =============================================================================
# Matching value types
# =============================================================================

class MatchingCriteria(BaseModel):
    max_origin_distance: float = Field(default=500, gt=0)
    max_destination_distance: float = Field(default=1000, gt=0)
    max_time_difference: int = Field(default=30, ge=0)
    min_match_score: int = Field(default=60, ge=0, le=100)


class ScoreBreakdown(BaseModel):
    origin_distance: float = 0
    destination_distance: float = 0
    time_difference: float = 0
    preferences_match: bool = False
    department_match: bool = False


class MatchScore(BaseModel):
    request_id: str
    score: int
    breakdown: ScoreBreakdown


class MatchCandidate(BaseModel):
    """Ranked candidate returned by the finder."""
    score: int
    breakdown: ScoreBreakdown
    request: RideRequest
    user: UserProfile
