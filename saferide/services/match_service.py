"""Match Service - Forms a ride match from two or more searching requests."""

import asyncio
import logging
import uuid
from typing import Awaitable, List, Optional

from saferide.config import Settings, get_settings
from saferide.database import RIDE_MATCHES, RIDE_REQUESTS, DocumentStore
from saferide.exceptions import (
    ConflictError,
    DependencyUnavailableError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from saferide.models.ride_match import MatchPoint, MatchStatus, Participant, RideMatch
from saferide.models.ride_request import RideRequest, RideRequestStatus
from saferide.models.user import UserProfile
from saferide.services import notification_content as content
from saferide.services.chat_service import ChatService
from saferide.services.geocoding_service import Geocoder, GeocodingService
from saferide.services.notification_service import MatchNotifications, Notifier
from saferide.services.pricing import estimate_ride_cost, split_cost
from saferide.services.redis_service import RedisLockService
from saferide.services.ride_service import RideService
from saferide.services.user_service import UserService
from saferide.utils.geo_utils import centroid, distance_km
from saferide.utils.timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)


async def run_post_commit_hooks(label: str, *hooks: Awaitable) -> None:
    """Await each side effect in turn; a failing hook is logged and skipped."""
    for hook in hooks:
        try:
            await hook
        except Exception as e:
            logger.error(f"Post-commit hook failed ({label}): {e}", exc_info=True)


def build_participant(ride_request: RideRequest, user: Optional[UserProfile]) -> Participant:
    """Snapshot identity and route of a participant at formation time."""
    return Participant(
        user_id=ride_request.user_id,
        first_name=user.first_name if user else "",
        last_name=user.last_name if user else "",
        phone_number=user.phone_number if user else None,
        profile_image_url=user.profile_image_url if user else None,
        pickup_location=ride_request.origin,
        dropoff_location=ride_request.destination,
        seats=ride_request.looking_for_seats,
        is_student_verified=user.is_student_verified if user else False,
        department=user.department if user else None,
    )


def compute_costs(participants: List[Participant], app_settings: Settings):
    """
    (total_seats, estimated_total_cost, cost_per_person) for a participant set.
    Distance is centroid of pickups to centroid of drop-offs.
    """
    pickup = centroid(p.pickup_location.coordinates for p in participants)
    dropoff = centroid(p.dropoff_location.coordinates for p in participants)
    total_seats = sum(p.seats for p in participants)
    total = estimate_ride_cost(distance_km(pickup, dropoff), total_seats, app_settings)
    return total_seats, total, split_cost(total, len(participants))


class MatchService:
    """
    Ride match formation.

    Side effects, in order:
    1. Match document written
    2. Every request flipped searching -> matched (compare-and-set)
    3. Post-commit hooks: system chat message, "match found" notification

    A lost race at step 2 rolls back already flipped requests, cancels the
    match and raises ConflictError.
    """

    def __init__(
        self,
        store: DocumentStore,
        notifier: Notifier,
        geocoder: Optional[Geocoder] = None,
        clock: Optional[Clock] = None,
        lock_service: Optional[RedisLockService] = None,
        app_settings: Optional[Settings] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.settings = app_settings or get_settings()
        self.notifications = MatchNotifications(notifier)
        self.geocoding = GeocodingService(geocoder)
        self.lock_service = lock_service or RedisLockService(None)
        self.user_service = UserService(store)
        self.ride_service = RideService(store, self.clock)
        self.chat_service = ChatService(store, self.clock)

    async def get_ride_match(self, match_id: str) -> Optional[RideMatch]:
        doc = await self.store.get(RIDE_MATCHES, match_id)
        if not doc:
            return None
        return RideMatch(**doc)

    async def _load_requests(self, request_ids: List[str]) -> List[RideRequest]:
        docs = await asyncio.gather(
            *[self.store.get(RIDE_REQUESTS, rid) for rid in request_ids]
        )
        requests = []
        for rid, doc in zip(request_ids, docs):
            if not doc:
                raise NotFoundError(f"Ride request {rid} not found")
            requests.append(RideRequest(**doc))
        return requests

    async def _ensure_searching(self, ride_request: RideRequest) -> None:
        """Raise unless the request is (or has been healed back to) searching."""
        if ride_request.status == RideRequestStatus.SEARCHING:
            return
        if ride_request.status == RideRequestStatus.MATCHED:
            if await self.ride_service.heal_orphan(ride_request):
                ride_request.status = RideRequestStatus.SEARCHING.value
                ride_request.match_id = None
                ride_request.matched_with = []
                return
            raise ConflictError(f"Request {ride_request.id} is already in an active match")
        if ride_request.status == RideRequestStatus.RIDING:
            raise ConflictError(f"Request {ride_request.id} is already in an active ride")
        raise InvalidStateError(
            f"Request {ride_request.id} is {ride_request.status} and cannot be matched"
        )

    async def create_match(
        self, request_ids: List[str], creator_user_id: Optional[str] = None
    ) -> RideMatch:
        """Form a match. Returns the committed match."""
        if len(request_ids) < 2:
            raise ValidationError("A match needs at least two ride requests")
        if len(set(request_ids)) != len(request_ids):
            raise ValidationError("Duplicate request ids")

        token = await self.lock_service.acquire_request_locks(request_ids)
        if token is None:
            raise ConflictError("One of the requests is being matched right now")

        try:
            match = await self._form_match(request_ids, creator_user_id)
        finally:
            await self.lock_service.release_request_locks(request_ids, token)

        user_ids = match.participant_ids()
        await run_post_commit_hooks(
            f"match {match.id} formed",
            self.chat_service.add_system_message(
                match.id,
                content.CHAT_MATCH_FORMED.format(
                    meeting_point=match.meeting_point.address,
                    cost=content.format_cost(match.cost_per_person),
                ),
            ),
            self.notifications.match_found(
                user_ids, match.id, match.meeting_point.address, match.cost_per_person
            ),
        )
        return match

    async def _form_match(
        self, request_ids: List[str], creator_user_id: Optional[str]
    ) -> RideMatch:
        requests = await self._load_requests(request_ids)

        owners = [r.user_id for r in requests]
        if len(set(owners)) != len(owners):
            raise ValidationError("Each user may contribute only one request to a match")
        if creator_user_id is not None and creator_user_id not in owners:
            raise UnauthorizedError("You must own one of the requests to form a match")

        for ride_request in requests:
            await self._ensure_searching(ride_request)

        users = await self.user_service.get_users(owners)
        participants = [build_participant(r, users.get(r.user_id)) for r in requests]

        meeting = centroid(r.origin.coordinates for r in requests)
        dropoff = centroid(r.destination.coordinates for r in requests)
        meeting_address, dropoff_address = await asyncio.gather(
            self.geocoding.resolve_address(*meeting),
            self.geocoding.resolve_address(*dropoff),
        )

        total_seats, total_cost, cost_per_person = compute_costs(participants, self.settings)
        now = self.clock.now()
        match_id = str(uuid.uuid4())

        match = RideMatch(
            id=match_id,
            request_ids=[r.id for r in requests],
            participants=participants,
            meeting_point=MatchPoint(
                latitude=meeting[0], longitude=meeting[1], address=meeting_address
            ),
            dropoff_point=MatchPoint(
                latitude=dropoff[0], longitude=dropoff[1], address=dropoff_address
            ),
            departure_time=min(r.departure_time for r in requests),
            estimated_total_cost=total_cost,
            cost_per_person=cost_per_person,
            total_seats=total_seats,
            chat_room_id=match_id,
            status=MatchStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await self.store.create(RIDE_MATCHES, match.model_dump())

        await self._flip_requests(match, now)
        logger.info(
            f"Match {match_id} formed from {len(request_ids)} requests "
            f"({cost_per_person} per person)"
        )
        return match

    async def _flip_requests(self, match: RideMatch, now) -> None:
        flipped: List[str] = []
        try:
            for rid in match.request_ids:
                ok = await self.store.update(
                    RIDE_REQUESTS,
                    rid,
                    {
                        "status": RideRequestStatus.MATCHED.value,
                        "match_id": match.id,
                        "matched_with": [o for o in match.request_ids if o != rid],
                        "updated_at": now,
                    },
                    expected={"status": RideRequestStatus.SEARCHING.value},
                )
                if not ok:
                    raise ConflictError(f"Request {rid} was taken by another match")
                flipped.append(rid)
        except (ConflictError, DependencyUnavailableError) as e:
            logger.warning(f"Rolling back match {match.id}: {e}")
            await self._rollback(match, flipped, now)
            raise

    async def _rollback(self, match: RideMatch, flipped: List[str], now) -> None:
        for rid in flipped:
            await self.ride_service.reset_to_searching(rid, expected_match_id=match.id)
        await self.store.update(
            RIDE_MATCHES,
            match.id,
            {
                "status": MatchStatus.CANCELLED.value,
                "cancellation_reason": "formation_conflict",
                "updated_at": now,
            },
        )
