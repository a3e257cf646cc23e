"""
Match Scoring

Pure compatibility scoring for a pair of ride requests.

Weights (max 100):
1. Origin proximity      40  (linear decay to the cap, fail fast beyond it)
2. Destination proximity 40  (same)
3. Departure closeness   10  (within the larger flexibility of the two)
4. Gender preference      5  (mutual compatibility, unknown gender is lenient)
5. Shared department      5  (both opted in and both departments known and equal)
"""

import math
from typing import Optional

from saferide.models.ride_match import MatchingCriteria, MatchScore, ScoreBreakdown
from saferide.models.ride_request import GenderPreference, RideRequest
from saferide.models.user import UserProfile
from saferide.utils.geo_utils import distance_meters

WEIGHT_ORIGIN = 40
WEIGHT_DESTINATION = 40
WEIGHT_TIME = 10
WEIGHT_PREFERENCES = 5
WEIGHT_DEPARTMENT = 5

_REQUIRED_GENDER = {
    GenderPreference.FEMALE_ONLY.value: "female",
    GenderPreference.MALE_ONLY.value: "male",
}


def _pref_value(preference) -> str:
    return preference.value if isinstance(preference, GenderPreference) else str(preference)


def gender_preference_violated(preference, counterpart_gender: Optional[str]) -> bool:
    """True only when a specific preference is contradicted by a known gender."""
    required = _REQUIRED_GENDER.get(_pref_value(preference))
    if required is None or counterpart_gender is None:
        return False
    return counterpart_gender != required


def is_gender_compatible(
    source_preference,
    candidate_preference,
    source_gender: Optional[str],
    candidate_gender: Optional[str],
) -> bool:
    source_pref = _pref_value(source_preference)
    candidate_pref = _pref_value(candidate_preference)

    # Two different specific preferences can never share a ride
    if (
        source_pref in _REQUIRED_GENDER
        and candidate_pref in _REQUIRED_GENDER
        and source_pref != candidate_pref
    ):
        return False

    if gender_preference_violated(source_pref, candidate_gender):
        return False
    if gender_preference_violated(candidate_pref, source_gender):
        return False
    return True


def is_department_match(
    source: RideRequest,
    candidate: RideRequest,
    source_user: Optional[UserProfile],
    candidate_user: Optional[UserProfile],
) -> bool:
    if not (
        source.preferences.same_department_preferred
        and candidate.preferences.same_department_preferred
    ):
        return False
    if source_user is None or candidate_user is None:
        return False
    source_dept = source_user.normalized_department
    candidate_dept = candidate_user.normalized_department
    return source_dept is not None and source_dept == candidate_dept


def _proximity_points(distance: float, cap: float, weight: int) -> float:
    return weight * (1 - distance / cap)


def _time_points(diff_minutes: float, bound_minutes: int) -> float:
    if bound_minutes == 0:
        return WEIGHT_TIME if diff_minutes == 0 else 0
    if diff_minutes > bound_minutes:
        return 0
    return WEIGHT_TIME * (1 - diff_minutes / bound_minutes)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_match_score(
    source: RideRequest,
    candidate: RideRequest,
    criteria: MatchingCriteria,
    source_user: Optional[UserProfile] = None,
    candidate_user: Optional[UserProfile] = None,
) -> MatchScore:
    """
    Score ``candidate`` against ``source``.

    An origin or destination distance beyond its cap short-circuits to a
    score of 0; the breakdown still carries the distances computed so far.
    A distance exactly at the cap contributes 0 points without disqualifying.
    """
    breakdown = ScoreBreakdown()

    origin_distance = distance_meters(
        source.origin.coordinates, candidate.origin.coordinates
    )
    breakdown.origin_distance = origin_distance
    if origin_distance > criteria.max_origin_distance:
        return MatchScore(request_id=candidate.id, score=0, breakdown=breakdown)
    total = _proximity_points(origin_distance, criteria.max_origin_distance, WEIGHT_ORIGIN)

    destination_distance = distance_meters(
        source.destination.coordinates, candidate.destination.coordinates
    )
    breakdown.destination_distance = destination_distance
    if destination_distance > criteria.max_destination_distance:
        return MatchScore(request_id=candidate.id, score=0, breakdown=breakdown)
    total += _proximity_points(
        destination_distance, criteria.max_destination_distance, WEIGHT_DESTINATION
    )

    diff_minutes = abs(
        (source.departure_time - candidate.departure_time).total_seconds()
    ) / 60
    breakdown.time_difference = diff_minutes
    total += _time_points(diff_minutes, max(source.flexibility, candidate.flexibility))

    breakdown.preferences_match = is_gender_compatible(
        source.preferences.gender_preference,
        candidate.preferences.gender_preference,
        source_user.normalized_gender if source_user else None,
        candidate_user.normalized_gender if candidate_user else None,
    )
    if breakdown.preferences_match:
        total += WEIGHT_PREFERENCES

    breakdown.department_match = is_department_match(
        source, candidate, source_user, candidate_user
    )
    if breakdown.department_match:
        total += WEIGHT_DEPARTMENT

    score = max(0, min(100, round_half_up(total)))
    return MatchScore(request_id=candidate.id, score=score, breakdown=breakdown)
