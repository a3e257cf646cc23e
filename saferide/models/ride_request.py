"""
Ride Request Model

Defines the ride request schema for document store persistence.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from saferide.utils.timezone_utils import utc_now


class RideRequestStatus(str, Enum):
    """Status of a ride request."""

    SEARCHING = "searching"  # Open for matching
    MATCHED = "matched"  # Part of a pending/confirmed match
    RIDING = "riding"  # Ride in progress
    COMPLETED = "completed"
    CANCELLED = "cancelled"  # User cancelled or expired


class GenderPreference(str, Enum):
    """Who a rider is willing to share with."""

    ANY = "any"
    FEMALE_ONLY = "female_only"
    MALE_ONLY = "male_only"


class Location(BaseModel):
    """Geographic point with address and origin geohash."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(default="", max_length=300)
    geohash: Optional[str] = Field(None, description="Computed server side")

    @property
    def coordinates(self) -> tuple:
        return self.latitude, self.longitude


class RidePreferences(BaseModel):
    gender_preference: GenderPreference = Field(default=GenderPreference.ANY)
    student_verified_only: bool = False
    same_department_preferred: bool = False

    class Config:
        use_enum_values = True


class RideRequest(BaseModel):
    """
    Ride request model.

    Fields:
    - id: Unique request ID
    - user_id: Owner of the request (immutable)
    - origin / destination: Locations with geohash
    - departure_time: Desired departure (UTC)
    - flexibility: Tolerance in minutes around departure_time
    - looking_for_seats: Seats needed (1-4)
    - max_price_per_seat: Highest acceptable price per seat
    - max_walk_distance: Meters the rider will walk to a meeting point
    - preferences: Matching preferences
    - status: Current status of the request
    - match_id: Match this request belongs to, if any
    - matched_with: Sibling request IDs in the same match (cache only)
    - expires_at: departure_time + flexibility
    """

    id: str = Field(..., description="Unique request ID")
    user_id: str = Field(..., description="User who created the request")
    origin: Location
    destination: Location
    departure_time: datetime
    flexibility: int = Field(default=15, ge=0, le=120)
    looking_for_seats: int = Field(default=1, ge=1, le=4)
    max_price_per_seat: float = Field(..., gt=0)
    max_walk_distance: float = Field(default=500, gt=0, le=2000)
    preferences: RidePreferences = Field(default_factory=RidePreferences)
    status: RideRequestStatus = Field(default=RideRequestStatus.SEARCHING)
    match_id: Optional[str] = None
    matched_with: list[str] = Field(default_factory=list)
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        use_enum_values = True

    @staticmethod
    def compute_expires_at(departure_time: datetime, flexibility: int) -> datetime:
        return departure_time + timedelta(minutes=flexibility)


class RideRequestCreate(BaseModel):
    """Data required to create a new ride request."""

    origin: Location
    destination: Location
    departure_time: datetime
    flexibility: int = Field(default=15, ge=0, le=120)
    looking_for_seats: int = Field(default=1, ge=1, le=4)
    max_price_per_seat: float = Field(..., gt=0)
    max_walk_distance: float = Field(default=500, gt=0, le=2000)
    preferences: RidePreferences = Field(default_factory=RidePreferences)


class RideRequestUpdate(BaseModel):
    """Partial update; only allowed while the request is searching."""

    origin: Optional[Location] = None
    destination: Optional[Location] = None
    departure_time: Optional[datetime] = None
    flexibility: Optional[int] = Field(None, ge=0, le=120)
    looking_for_seats: Optional[int] = Field(None, ge=1, le=4)
    max_price_per_seat: Optional[float] = Field(None, gt=0)
    max_walk_distance: Optional[float] = Field(None, gt=0, le=2000)
    preferences: Optional[RidePreferences] = None
