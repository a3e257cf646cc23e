"""
Ride Service

Ride request creation, management and status transitions.
"""

import logging
import uuid
from typing import List, Optional

from saferide.database import RIDE_MATCHES, RIDE_REQUESTS, DocumentStore, Filter
from saferide.exceptions import (
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from saferide.models.ride_match import ACTIVE_MATCH_STATUSES
from saferide.models.ride_request import (
    Location,
    RideRequest,
    RideRequestCreate,
    RideRequestStatus,
    RideRequestUpdate,
)
from saferide.utils.geo_utils import encode_geohash, format_coordinates
from saferide.utils.timezone_utils import Clock, SystemClock, ensure_utc

logger = logging.getLogger(__name__)

ACTIVE_REQUEST_STATUSES = [
    RideRequestStatus.SEARCHING.value,
    RideRequestStatus.MATCHED.value,
    RideRequestStatus.RIDING.value,
]


def prepare_location(location: Location) -> Location:
    """Fill the geohash (always recomputed) and a fallback address."""
    return location.model_copy(update={
        "geohash": encode_geohash(location.latitude, location.longitude),
        "address": location.address or format_coordinates(location.latitude, location.longitude),
    })


class RideService:
    """
    Ride request management service.

    Requests may only be edited or deleted while ``searching``. A request
    marked ``matched`` whose match is gone (or no longer active) is an orphan
    and is healed back to ``searching``.
    """

    def __init__(self, store: DocumentStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def create_ride_request(
        self, user_id: str, data: RideRequestCreate
    ) -> RideRequest:
        """Create a new searching ride request owned by ``user_id``."""
        now = self.clock.now()
        departure_time = ensure_utc(data.departure_time)

        ride_request = RideRequest(
            id=str(uuid.uuid4()),
            user_id=user_id,
            origin=prepare_location(data.origin),
            destination=prepare_location(data.destination),
            departure_time=departure_time,
            flexibility=data.flexibility,
            looking_for_seats=data.looking_for_seats,
            max_price_per_seat=data.max_price_per_seat,
            max_walk_distance=data.max_walk_distance,
            preferences=data.preferences,
            status=RideRequestStatus.SEARCHING,
            expires_at=RideRequest.compute_expires_at(departure_time, data.flexibility),
            created_at=now,
            updated_at=now,
        )

        await self.store.create(RIDE_REQUESTS, ride_request.model_dump())
        logger.info(f"Ride request {ride_request.id} created by {user_id}")
        return ride_request

    async def get_ride_request(self, request_id: str) -> Optional[RideRequest]:
        doc = await self.store.get(RIDE_REQUESTS, request_id)
        if not doc:
            return None
        return RideRequest(**doc)

    async def get_user_ride_requests(self, user_id: str) -> List[RideRequest]:
        """Active requests (searching, matched, riding), earliest departure first."""
        docs = await self.store.query(
            RIDE_REQUESTS,
            [
                Filter("user_id", "==", user_id),
                Filter("status", "in", ACTIVE_REQUEST_STATUSES),
            ],
            order_by="departure_time",
        )
        return [RideRequest(**doc) for doc in docs]

    async def _get_owned_request(self, request_id: str, user_id: str) -> RideRequest:
        ride_request = await self.get_ride_request(request_id)
        if not ride_request:
            raise NotFoundError(f"Ride request {request_id} not found")
        if ride_request.user_id != user_id:
            raise UnauthorizedError("You do not own this ride request")
        return ride_request

    async def update_ride_request(
        self, request_id: str, user_id: str, data: RideRequestUpdate
    ) -> RideRequest:
        ride_request = await self._get_owned_request(request_id, user_id)
        if ride_request.status != RideRequestStatus.SEARCHING:
            raise InvalidStateError("Only searching requests can be edited")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return ride_request

        updated = ride_request.model_copy(update={
            key: getattr(data, key) for key in changes
        })
        updated.origin = prepare_location(updated.origin)
        updated.destination = prepare_location(updated.destination)
        updated.departure_time = ensure_utc(updated.departure_time)
        updated.expires_at = RideRequest.compute_expires_at(
            updated.departure_time, updated.flexibility
        )
        updated.updated_at = self.clock.now()

        fields = updated.model_dump(exclude={"id", "user_id", "status", "created_at"})
        ok = await self.store.update(
            RIDE_REQUESTS,
            request_id,
            fields,
            expected={"status": RideRequestStatus.SEARCHING.value},
        )
        if not ok:
            raise InvalidStateError("Request changed state while updating; try again")

        return updated

    async def delete_ride_request(self, request_id: str, user_id: str) -> None:
        ride_request = await self._get_owned_request(request_id, user_id)
        if ride_request.status != RideRequestStatus.SEARCHING:
            raise InvalidStateError("Only searching requests can be deleted")

        ok = await self.store.delete(
            RIDE_REQUESTS,
            request_id,
            expected={"status": RideRequestStatus.SEARCHING.value},
        )
        if not ok:
            raise InvalidStateError("Request changed state while deleting; try again")
        logger.info(f"Ride request {request_id} deleted by {user_id}")

    # =========================================================================
    # Status transitions
    # =========================================================================

    async def reset_to_searching(
        self, request_id: str, expected_match_id: Optional[str] = None
    ) -> bool:
        """
        Detach a request from its match. With ``expected_match_id`` the write
        only happens if the request still points at that match, so a request
        that has since joined another match is left alone.
        """
        expected = {"match_id": expected_match_id} if expected_match_id else None
        ok = await self.store.update(
            RIDE_REQUESTS,
            request_id,
            {
                "status": RideRequestStatus.SEARCHING.value,
                "match_id": None,
                "matched_with": [],
                "updated_at": self.clock.now(),
            },
            expected=expected,
        )
        if not ok:
            logger.info(f"Request {request_id} not reset (missing or moved on)")
        return ok

    async def set_status_for_match(
        self, request_id: str, match_id: str, status: RideRequestStatus
    ) -> bool:
        """Move a request along with its match. Completion releases the match link."""
        fields = {"status": status.value, "updated_at": self.clock.now()}
        if status == RideRequestStatus.COMPLETED:
            fields.update({"match_id": None, "matched_with": []})
        return await self.store.update(
            RIDE_REQUESTS, request_id, fields, expected={"match_id": match_id}
        )

    async def is_orphaned(self, ride_request: RideRequest) -> bool:
        """True when a matched request points at a missing or inactive match."""
        if ride_request.status != RideRequestStatus.MATCHED:
            return False
        if not ride_request.match_id:
            return True
        match = await self.store.get(RIDE_MATCHES, ride_request.match_id)
        return match is None or match.get("status") not in ACTIVE_MATCH_STATUSES

    async def heal_orphan(self, ride_request: RideRequest) -> bool:
        """Reset an orphaned request to searching. Returns True if it was healed."""
        if not await self.is_orphaned(ride_request):
            return False
        expected = {
            "status": RideRequestStatus.MATCHED.value,
            "match_id": ride_request.match_id,
        }
        ok = await self.store.update(
            RIDE_REQUESTS,
            ride_request.id,
            {
                "status": RideRequestStatus.SEARCHING.value,
                "match_id": None,
                "matched_with": [],
                "updated_at": self.clock.now(),
            },
            expected=expected,
        )
        if ok:
            logger.warning(
                f"Healed orphaned request {ride_request.id} (match {ride_request.match_id})"
            )
        return ok

    async def reset_stuck_request(self, request_id: str, user_id: str) -> RideRequest:
        """User-triggered orphan healing after an ownership check."""
        ride_request = await self._get_owned_request(request_id, user_id)
        if ride_request.status != RideRequestStatus.MATCHED:
            raise InvalidStateError("Only matched requests can be reset")
        if not await self.heal_orphan(ride_request):
            raise InvalidStateError("Request is part of an active match; leave it instead")
        return await self.get_ride_request(request_id)

    async def cleanup_expired_requests(self) -> int:
        """Cancel searching requests whose flexibility window has passed."""
        now = self.clock.now()
        docs = await self.store.query(
            RIDE_REQUESTS,
            [
                Filter("status", "==", RideRequestStatus.SEARCHING.value),
                Filter("expires_at", "<", now),
            ],
        )

        cancelled = 0
        for doc in docs:
            ok = await self.store.update(
                RIDE_REQUESTS,
                doc["id"],
                {"status": RideRequestStatus.CANCELLED.value, "updated_at": now},
                expected={"status": RideRequestStatus.SEARCHING.value},
            )
            if ok:
                cancelled += 1

        if cancelled:
            logger.info(f"Cancelled {cancelled} expired ride requests")
        return cancelled
