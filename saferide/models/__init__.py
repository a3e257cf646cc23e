"""SafeRide Models Package"""

from saferide.models.user import UserProfile
from saferide.models.ride_request import (
    GenderPreference,
    Location,
    RidePreferences,
    RideRequest,
    RideRequestCreate,
    RideRequestStatus,
    RideRequestUpdate,
)
from saferide.models.ride_match import (
    ACTIVE_MATCH_STATUSES,
    MatchCandidate,
    MatchCreate,
    MatchingCriteria,
    MatchPoint,
    MatchScore,
    MatchStatus,
    Participant,
    RideMatch,
    ScoreBreakdown,
)
from saferide.models.notification import Notification, NotificationType
from saferide.models.chat_message import ChatMessage, MessageType

__all__ = [
    "UserProfile",
    "GenderPreference", "Location", "RidePreferences", "RideRequest",
    "RideRequestCreate", "RideRequestStatus", "RideRequestUpdate",
    "ACTIVE_MATCH_STATUSES", "MatchCandidate", "MatchCreate", "MatchingCriteria",
    "MatchPoint", "MatchScore", "MatchStatus", "Participant", "RideMatch", "ScoreBreakdown",
    "Notification", "NotificationType",
    "ChatMessage", "MessageType",
]
