"""
Matchmaking Service

Candidate search for a ride request: geohash proximity query, eligibility
filters, compatibility scoring and ranking.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from saferide.database import RIDE_REQUESTS, DocumentStore, Filter
from saferide.exceptions import NotFoundError
from saferide.models.ride_match import MatchCandidate, MatchingCriteria
from saferide.models.ride_request import RideRequest, RideRequestStatus
from saferide.models.user import UserProfile
from saferide.services.scoring import calculate_match_score, gender_preference_violated
from saferide.services.user_service import UserService
from saferide.utils.geo_utils import geohash_query_bounds

logger = logging.getLogger(__name__)


class MatchmakingService:
    """
    Matchmaking engine for finding compatible ride requests.

    Pipeline:
    1. Geohash range queries around the source origin (one per bound, concurrent)
    2. Union by id, drop the source request and the owner's other requests
    3. Resolve owner profiles in one batch; candidates without a profile are skipped
    4. Hard filters: mutual student verification, contradicted gender preference
    5. Score, keep score >= min_match_score, sort descending (stable)
    """

    def __init__(self, store: DocumentStore, user_service: Optional[UserService] = None):
        self.store = store
        self.user_service = user_service or UserService(store)

    async def _query_bound(self, start: str, end: str) -> List[dict]:
        return await self.store.query(
            RIDE_REQUESTS,
            [
                Filter("origin.geohash", ">=", start),
                Filter("origin.geohash", "<=", end),
                Filter("status", "==", RideRequestStatus.SEARCHING.value),
            ],
        )

    async def _find_nearby_requests(
        self, source: RideRequest, radius_m: float
    ) -> List[RideRequest]:
        bounds = geohash_query_bounds(source.origin.coordinates, radius_m)
        results = await asyncio.gather(
            *[self._query_bound(start, end) for start, end in bounds]
        )

        nearby: Dict[str, RideRequest] = {}
        for docs in results:
            for doc in docs:
                if doc["id"] in nearby or doc["id"] == source.id:
                    continue
                if doc["user_id"] == source.user_id:
                    continue
                nearby[doc["id"]] = RideRequest(**doc)
        return list(nearby.values())

    @staticmethod
    def passes_filters(
        source: RideRequest,
        candidate: RideRequest,
        source_user: Optional[UserProfile],
        candidate_user: UserProfile,
    ) -> bool:
        """Eligibility checks applied before scoring."""
        if candidate.status != RideRequestStatus.SEARCHING:
            return False

        # Student verification is required in both directions
        if source.preferences.student_verified_only and not candidate_user.is_student_verified:
            return False
        if candidate.preferences.student_verified_only and not (
            source_user and source_user.is_student_verified
        ):
            return False

        # Gender preference is HARD when the counterpart's gender is known
        if gender_preference_violated(
            source.preferences.gender_preference, candidate_user.normalized_gender
        ):
            return False
        if gender_preference_violated(
            candidate.preferences.gender_preference,
            source_user.normalized_gender if source_user else None,
        ):
            return False

        return True

    async def find_potential_matches(
        self, request_id: str, criteria: Optional[MatchingCriteria] = None
    ) -> List[MatchCandidate]:
        """Ranked candidates for ``request_id``, best first."""
        criteria = criteria or MatchingCriteria()

        doc = await self.store.get(RIDE_REQUESTS, request_id)
        if not doc:
            raise NotFoundError(f"Ride request {request_id} not found")
        source = RideRequest(**doc)

        nearby = await self._find_nearby_requests(source, criteria.max_origin_distance)
        if not nearby:
            return []

        users = await self.user_service.get_users(
            [source.user_id] + [c.user_id for c in nearby]
        )
        source_user = users.get(source.user_id)

        candidates: List[MatchCandidate] = []
        skipped_no_profile = 0
        for candidate in nearby:
            candidate_user = users.get(candidate.user_id)
            if candidate_user is None:
                skipped_no_profile += 1
                continue
            if not self.passes_filters(source, candidate, source_user, candidate_user):
                continue

            result = calculate_match_score(
                source, candidate, criteria, source_user, candidate_user
            )
            if result.score < criteria.min_match_score:
                continue
            candidates.append(MatchCandidate(
                score=result.score,
                breakdown=result.breakdown,
                request=candidate,
                user=candidate_user,
            ))

        if skipped_no_profile:
            logger.info(
                f"Skipped {skipped_no_profile} candidates without a profile for {request_id}"
            )

        candidates.sort(key=lambda c: c.score, reverse=True)
        logger.debug(
            f"Found {len(candidates)} matches for {request_id} "
            f"from {len(nearby)} nearby requests"
        )
        return candidates
