"""
Match Lifecycle Service

Confirmation quorum, participant departure, confirmation timeout, departure
expiry and ride progress (start / complete).

State machine:
    pending --confirm(all)--> confirmed --start--> riding --complete--> completed
    pending --timeout | departure passed--> cancelled
    pending | confirmed --leave--> pending | confirmed (>= 2 remain) or cancelled

Match writes are guarded by the ``version`` counter: each mutation re-reads
the match, decides, and writes only if the version is unchanged, retrying a
bounded number of times.
"""

import logging
import math
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from saferide.config import Settings, get_settings
from saferide.database import RIDE_MATCHES, RIDE_REQUESTS, DocumentStore, Filter
from saferide.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SafeRideError,
    UnauthorizedError,
)
from saferide.models.ride_match import MatchStatus, RideMatch
from saferide.models.ride_request import RideRequestStatus
from saferide.services import notification_content as content
from saferide.services.chat_service import ChatService
from saferide.services.match_service import compute_costs, run_post_commit_hooks
from saferide.services.notification_service import MatchNotifications, Notifier
from saferide.services.ride_service import RideService
from saferide.utils.timezone_utils import Clock, SystemClock

logger = logging.getLogger(__name__)

# decide(match) -> (fields to set or None for no write, outcome)
Decision = Tuple[Optional[Dict[str, Any]], Any]


class MatchLifecycleService:
    """Match lifecycle management."""

    def __init__(
        self,
        store: DocumentStore,
        notifier: Notifier,
        clock: Optional[Clock] = None,
        app_settings: Optional[Settings] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.settings = app_settings or get_settings()
        self.notifications = MatchNotifications(notifier)
        self.ride_service = RideService(store, self.clock)
        self.chat_service = ChatService(store, self.clock)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_match(self, match_id: str) -> RideMatch:
        doc = await self.store.get(RIDE_MATCHES, match_id)
        if not doc:
            raise NotFoundError(f"Match {match_id} not found")
        return RideMatch(**doc)

    async def _mutate_match(
        self, match_id: str, decide: Callable[[RideMatch], Decision]
    ) -> Tuple[RideMatch, Any, bool]:
        """
        Read-decide-write loop. Returns (match after the operation, outcome,
        whether a write happened).
        """
        for attempt in range(self.settings.max_write_retries):
            match = await self._get_match(match_id)
            fields, outcome = decide(match)
            if fields is None:
                return match, outcome, False

            fields["version"] = match.version + 1
            fields["updated_at"] = self.clock.now()
            ok = await self.store.update(
                RIDE_MATCHES, match_id, fields, expected={"version": match.version}
            )
            if ok:
                return RideMatch(**{**match.model_dump(), **fields}), outcome, True
            logger.info(f"Match {match_id} changed concurrently (attempt {attempt + 1})")

        raise ConflictError(f"Match {match_id} is being modified; try again")

    @staticmethod
    def _require_participant(match: RideMatch, user_id: str) -> None:
        if not match.is_participant(user_id):
            raise UnauthorizedError("You are not a participant of this match")

    def _confirmation_deadline(self, match: RideMatch):
        return match.created_at + timedelta(minutes=self.settings.confirmation_timeout_minutes)

    async def _reset_requests(self, match_id: str, request_ids: List[str]) -> None:
        for rid in request_ids:
            await self.ride_service.reset_to_searching(rid, expected_match_id=match_id)

    # =========================================================================
    # Confirm
    # =========================================================================

    async def confirm_match(self, match_id: str, user_id: str) -> RideMatch:
        """Add ``user_id`` to confirmations; lock the final cost when all confirmed."""

        def decide(match: RideMatch) -> Decision:
            self._require_participant(match, user_id)
            if user_id in match.confirmations:
                return None, False
            if match.status != MatchStatus.PENDING:
                raise InvalidStateError(f"Cannot confirm a {match.status} match")

            confirmations = match.confirmations + [user_id]
            fields: Dict[str, Any] = {"confirmations": confirmations}
            if set(match.participant_ids()) <= set(confirmations):
                now = self.clock.now()
                fields.update({
                    "status": MatchStatus.CONFIRMED.value,
                    "final_cost_per_person": match.cost_per_person,
                    "confirmed_at": now,
                })
                return fields, True
            return fields, False

        match, fully_confirmed, written = await self._mutate_match(match_id, decide)
        if not written:
            return match

        name = next(p.display_name for p in match.participants if p.user_id == user_id)
        hooks = [
            self.chat_service.add_system_message(
                match_id, content.CHAT_PARTICIPANT_CONFIRMED.format(name=name)
            )
        ]
        if fully_confirmed:
            logger.info(f"Match {match_id} fully confirmed")
            hooks += [
                self.notifications.match_confirmed(
                    match.participant_ids(), match_id, match.final_cost_per_person
                ),
                self.chat_service.add_system_message(
                    match_id,
                    content.CHAT_MATCH_CONFIRMED.format(
                        cost=content.format_cost(match.final_cost_per_person)
                    ),
                ),
            ]
        await run_post_commit_hooks(f"confirm {match_id}", *hooks)
        return match

    # =========================================================================
    # Leave
    # =========================================================================

    async def leave_match(self, match_id: str, user_id: str) -> RideMatch:
        """
        Remove a participant. Fewer than two remaining cancels the match;
        otherwise cost is re-split over the remaining participants and the
        match returns to pending (or confirmed if everyone left had confirmed).
        """

        def decide(match: RideMatch) -> Decision:
            self._require_participant(match, user_id)
            if match.status in (
                MatchStatus.RIDING, MatchStatus.COMPLETED, MatchStatus.CANCELLED
            ):
                raise InvalidStateError(f"Cannot leave a {match.status} match")

            index = match.participant_ids().index(user_id)
            leaver = match.participants[index]
            leaver_request_id = match.request_ids[index]
            participants = match.participants[:index] + match.participants[index + 1:]
            request_ids = match.request_ids[:index] + match.request_ids[index + 1:]
            confirmations = [uid for uid in match.confirmations if uid != user_id]

            fields: Dict[str, Any] = {
                "participants": [p.model_dump() for p in participants],
                "request_ids": request_ids,
                "confirmations": confirmations,
            }

            if len(participants) < 2:
                fields.update({
                    "status": MatchStatus.CANCELLED.value,
                    "cancellation_reason": "not_enough_participants",
                    "final_cost_per_person": None,
                })
                return fields, (leaver, leaver_request_id)

            total_seats, total_cost, cost_per_person = compute_costs(
                participants, self.settings
            )
            fields.update({
                "total_seats": total_seats,
                "estimated_total_cost": total_cost,
                "cost_per_person": cost_per_person,
            })
            remaining_ids = {p.user_id for p in participants}
            if remaining_ids <= set(confirmations):
                fields.update({
                    "status": MatchStatus.CONFIRMED.value,
                    "final_cost_per_person": cost_per_person,
                    "confirmed_at": match.confirmed_at or self.clock.now(),
                })
            else:
                fields.update({
                    "status": MatchStatus.PENDING.value,
                    "final_cost_per_person": None,
                    "confirmed_at": None,
                })
            return fields, (leaver, leaver_request_id)

        match, (leaver, leaver_request_id), _ = await self._mutate_match(match_id, decide)

        await self.ride_service.reset_to_searching(leaver_request_id, expected_match_id=match_id)
        remaining = match.participant_ids()

        if match.status == MatchStatus.CANCELLED:
            await self._reset_requests(match_id, match.request_ids)
            logger.info(f"Match {match_id} cancelled: {user_id} left, too few remain")
            await run_post_commit_hooks(
                f"leave {match_id}",
                self.notifications.not_enough_participants(
                    remaining, match_id, leaver.display_name
                ),
            )
            return match

        for rid in match.request_ids:
            await self.store.update(
                RIDE_REQUESTS,
                rid,
                {"matched_with": [o for o in match.request_ids if o != rid]},
                expected={"match_id": match_id},
            )

        logger.info(f"{user_id} left match {match_id}; new cost {match.cost_per_person}")
        await run_post_commit_hooks(
            f"leave {match_id}",
            self.notifications.participant_left(
                remaining, match_id, leaver.display_name, match.cost_per_person
            ),
            self.chat_service.add_system_message(
                match_id,
                content.CHAT_PARTICIPANT_LEFT.format(
                    name=leaver.display_name,
                    cost=content.format_cost(match.cost_per_person),
                ),
            ),
        )
        return match

    # =========================================================================
    # Confirmation timeout
    # =========================================================================

    async def check_match_confirmation_timeout(self, match_id: str) -> bool:
        """
        Cancel a pending match whose confirmation window has passed without
        full confirmation. Only unconfirmed participants' requests are reset.
        Returns True if this call cancelled the match.
        """
        now = self.clock.now()

        def decide(match: RideMatch) -> Decision:
            if match.status != MatchStatus.PENDING:
                return None, None
            if now < self._confirmation_deadline(match):
                return None, None
            if match.all_confirmed():
                return None, None
            return {
                "status": MatchStatus.CANCELLED.value,
                "cancellation_reason": "confirmation_timeout",
            }, None

        match, _, written = await self._mutate_match(match_id, decide)
        if not written:
            return False

        unconfirmed = [
            rid
            for rid, participant in zip(match.request_ids, match.participants)
            if participant.user_id not in match.confirmations
        ]
        await self._reset_requests(match_id, unconfirmed)

        confirmed = len(set(match.confirmations) & set(match.participant_ids()))
        total = len(match.participants)
        logger.info(f"Match {match_id} cancelled on confirmation timeout ({confirmed}/{total})")
        await run_post_commit_hooks(
            f"timeout {match_id}",
            self.notifications.confirmation_timeout(
                match.participant_ids(), match_id, confirmed, total
            ),
        )
        return True

    async def check_confirmation_timeouts(self) -> int:
        """Sweep pending matches older than the confirmation window."""
        threshold = self.clock.now() - timedelta(
            minutes=self.settings.confirmation_timeout_minutes
        )
        docs = await self.store.query(
            RIDE_MATCHES,
            [
                Filter("status", "==", MatchStatus.PENDING.value),
                Filter("created_at", "<=", threshold),
            ],
        )

        cancelled = 0
        for doc in docs:
            try:
                if await self.check_match_confirmation_timeout(doc["id"]):
                    cancelled += 1
            except SafeRideError as e:
                logger.warning(f"Timeout check for match {doc['id']} failed: {e.message}")
        return cancelled

    # =========================================================================
    # Departure expiry
    # =========================================================================

    async def expire_old_matches(self) -> int:
        """Cancel every pending match whose departure time has passed."""
        now = self.clock.now()
        docs = await self.store.query(
            RIDE_MATCHES,
            [
                Filter("status", "==", MatchStatus.PENDING.value),
                Filter("departure_time", "<", now),
            ],
        )

        def decide(match: RideMatch) -> Decision:
            if match.status != MatchStatus.PENDING or match.departure_time >= now:
                return None, None
            return {
                "status": MatchStatus.CANCELLED.value,
                "cancellation_reason": "departure_passed",
            }, None

        expired = 0
        for doc in docs:
            try:
                match, _, written = await self._mutate_match(doc["id"], decide)
            except SafeRideError as e:
                logger.warning(f"Expiry of match {doc['id']} failed: {e.message}")
                continue
            if not written:
                continue

            await self._reset_requests(match.id, match.request_ids)
            await run_post_commit_hooks(
                f"expire {match.id}",
                self.notifications.match_expired(match.participant_ids(), match.id),
            )
            expired += 1

        if expired:
            logger.info(f"Expired {expired} matches past departure time")
        return expired

    # =========================================================================
    # Confirmation reminders
    # =========================================================================

    async def send_confirmation_reminders(self) -> int:
        """Remind unconfirmed participants once per pending match."""
        now = self.clock.now()
        threshold = now - timedelta(minutes=self.settings.confirmation_reminder_minutes)
        docs = await self.store.query(
            RIDE_MATCHES,
            [
                Filter("status", "==", MatchStatus.PENDING.value),
                Filter("created_at", "<=", threshold),
                Filter("reminder_sent_at", "==", None),
            ],
        )

        def decide(match: RideMatch) -> Decision:
            if match.status != MatchStatus.PENDING or match.reminder_sent_at is not None:
                return None, None
            if now >= self._confirmation_deadline(match):
                return None, None
            return {"reminder_sent_at": now}, None

        sent = 0
        for doc in docs:
            try:
                match, _, written = await self._mutate_match(doc["id"], decide)
            except SafeRideError as e:
                logger.warning(f"Reminder for match {doc['id']} failed: {e.message}")
                continue
            if not written:
                continue

            unconfirmed = [
                uid for uid in match.participant_ids() if uid not in match.confirmations
            ]
            minutes_left = math.ceil(
                (self._confirmation_deadline(match) - now).total_seconds() / 60
            )
            await run_post_commit_hooks(
                f"reminder {match.id}",
                self.notifications.confirmation_reminder(unconfirmed, match.id, minutes_left),
            )
            sent += 1
        return sent

    # =========================================================================
    # Ride progress
    # =========================================================================

    async def start_ride(self, match_id: str, user_id: str) -> RideMatch:
        """confirmed -> riding; every request moves to riding."""

        def decide(match: RideMatch) -> Decision:
            self._require_participant(match, user_id)
            if match.status == MatchStatus.RIDING:
                return None, None
            if match.status != MatchStatus.CONFIRMED:
                raise InvalidStateError("Only confirmed matches can start")
            return {"status": MatchStatus.RIDING.value, "started_at": self.clock.now()}, None

        match, _, written = await self._mutate_match(match_id, decide)
        if not written:
            return match

        for rid in match.request_ids:
            await self.ride_service.set_status_for_match(rid, match_id, RideRequestStatus.RIDING)

        await run_post_commit_hooks(
            f"start {match_id}",
            self.notifications.ride_started(match.participant_ids(), match_id),
            self.chat_service.add_system_message(match_id, content.CHAT_RIDE_STARTED),
        )
        return match

    async def complete_ride(self, match_id: str, user_id: str) -> RideMatch:
        """riding -> completed; every request moves to completed."""

        def decide(match: RideMatch) -> Decision:
            self._require_participant(match, user_id)
            if match.status == MatchStatus.COMPLETED:
                return None, None
            if match.status != MatchStatus.RIDING:
                raise InvalidStateError("Only rides in progress can be completed")
            return {
                "status": MatchStatus.COMPLETED.value,
                "completed_at": self.clock.now(),
            }, None

        match, _, written = await self._mutate_match(match_id, decide)
        if not written:
            return match

        for rid in match.request_ids:
            await self.ride_service.set_status_for_match(
                rid, match_id, RideRequestStatus.COMPLETED
            )

        await run_post_commit_hooks(
            f"complete {match_id}",
            self.notifications.ride_completed(match.participant_ids(), match_id),
            self.chat_service.add_system_message(match_id, content.CHAT_RIDE_COMPLETED),
        )
        return match
