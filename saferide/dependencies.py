"""
API Dependencies

FastAPI dependencies for authentication and service wiring. Every service
is built from the collaborators below, so tests can swap any of them through
``app.dependency_overrides``.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from saferide.database import DocumentStore, get_redis, get_store
from saferide.services.auth_service import verify_firebase_token
from saferide.services.chat_service import ChatService
from saferide.services.geocoding_service import Geocoder, NominatimGeocoder
from saferide.services.lifecycle_service import MatchLifecycleService
from saferide.services.match_service import MatchService
from saferide.services.matchmaking_service import MatchmakingService
from saferide.services.notification_service import NotificationService, Notifier
from saferide.services.redis_service import RedisLockService
from saferide.services.ride_service import RideService
from saferide.utils.timezone_utils import Clock, SystemClock


# =============================================================================
# Authentication
# =============================================================================


async def get_current_user_id(
    authorization: Optional[str] = Header(None)
) -> str:
    """
    Get current authenticated user id (Firebase UID) from the ID token.

    SECURITY: This is the primary authentication gate.
    All protected endpoints should depend on this.

    Expects Authorization header: Bearer <firebase_id_token>
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = verify_firebase_token(authorization[7:])
    if not claims or not claims.get("uid"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return claims["uid"]


# =============================================================================
# Collaborators
# =============================================================================


def get_document_store() -> DocumentStore:
    return get_store()


def get_clock() -> Clock:
    return SystemClock()


def get_geocoder() -> Optional[Geocoder]:
    return NominatimGeocoder()


def get_lock_service() -> RedisLockService:
    return RedisLockService(get_redis())


def get_notifier(
    store: DocumentStore = Depends(get_document_store),
    clock: Clock = Depends(get_clock),
) -> Notifier:
    return NotificationService(store, clock)


# =============================================================================
# Services
# =============================================================================


def get_ride_service(
    store: DocumentStore = Depends(get_document_store),
    clock: Clock = Depends(get_clock),
) -> RideService:
    return RideService(store, clock)


def get_matchmaking_service(
    store: DocumentStore = Depends(get_document_store),
) -> MatchmakingService:
    return MatchmakingService(store)


def get_match_service(
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    geocoder: Optional[Geocoder] = Depends(get_geocoder),
    clock: Clock = Depends(get_clock),
    lock_service: RedisLockService = Depends(get_lock_service),
) -> MatchService:
    return MatchService(store, notifier, geocoder, clock, lock_service)


def get_lifecycle_service(
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> MatchLifecycleService:
    return MatchLifecycleService(store, notifier, clock)


def get_chat_service(
    store: DocumentStore = Depends(get_document_store),
    clock: Clock = Depends(get_clock),
) -> ChatService:
    return ChatService(store, clock)
