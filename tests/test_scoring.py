"""
Tests for match scoring.

Weights: origin 40, destination 40, time 10, gender preference 5, department 5.
"""

from datetime import timedelta

import pytest

from saferide.models.ride_match import MatchingCriteria
from saferide.models.ride_request import Location, RidePreferences, RideRequest
from saferide.models.user import UserProfile
from saferide.services.scoring import (
    calculate_match_score,
    is_gender_compatible,
    round_half_up,
)
from saferide.utils.geo_utils import distance_meters

from conftest import DEPARTURE, DESTINATION, ORIGIN, offset_north


def make_request(
    request_id="b",
    user_id=None,
    origin=ORIGIN,
    destination=DESTINATION,
    departure=DEPARTURE,
    flexibility=15,
    **preferences,
) -> RideRequest:
    return RideRequest(
        id=request_id,
        user_id=user_id or f"user-{request_id}",
        origin=Location(latitude=origin[0], longitude=origin[1]),
        destination=Location(latitude=destination[0], longitude=destination[1]),
        departure_time=departure,
        flexibility=flexibility,
        max_price_per_seat=150,
        preferences=RidePreferences(**preferences),
        expires_at=departure + timedelta(minutes=flexibility),
    )


def make_user(user_id, gender=None, department=None):
    return UserProfile(id=user_id, first_name=user_id, gender=gender, department=department)


class TestCalculateMatchScore:

    @pytest.fixture
    def criteria(self):
        return MatchingCriteria()

    def test_identical_requests_score_100(self, criteria):
        source = make_request("a", same_department_preferred=True)
        candidate = make_request("b", same_department_preferred=True)
        result = calculate_match_score(
            source, candidate, criteria,
            make_user("user-a", department="CSE"), make_user("user-b", department="cse"),
        )

        assert result.score == 100
        assert result.request_id == "b"
        assert result.breakdown.origin_distance == 0
        assert result.breakdown.preferences_match is True
        assert result.breakdown.department_match is True

    def test_identical_without_department_opt_in(self, criteria):
        result = calculate_match_score(make_request("a"), make_request("b"), criteria)
        assert result.score == 95
        assert result.breakdown.department_match is False

    def test_origin_beyond_cap_fails_fast(self, criteria):
        far_origin = offset_north(ORIGIN, 800)
        candidate = make_request("b", origin=far_origin)
        result = calculate_match_score(make_request("a"), candidate, criteria)

        assert result.score == 0
        assert result.breakdown.origin_distance == pytest.approx(
            distance_meters(ORIGIN, far_origin)
        )
        assert result.breakdown.origin_distance > criteria.max_origin_distance
        # Remaining criteria are not evaluated
        assert result.breakdown.destination_distance == 0
        assert result.breakdown.preferences_match is False

    def test_origin_exactly_at_cap_is_not_disqualified(self):
        candidate_origin = offset_north(ORIGIN, 300)
        cap = distance_meters(ORIGIN, candidate_origin)
        criteria = MatchingCriteria(max_origin_distance=cap)

        result = calculate_match_score(
            make_request("a"), make_request("b", origin=candidate_origin), criteria
        )

        # origin contributes 0; destination 40, time 10, preferences 5
        assert result.score == 55

    def test_destination_beyond_cap_fails_fast(self, criteria):
        far_destination = offset_north(DESTINATION, 1500)
        result = calculate_match_score(
            make_request("a"), make_request("b", destination=far_destination), criteria
        )

        assert result.score == 0
        assert result.breakdown.origin_distance == 0
        assert result.breakdown.destination_distance > criteria.max_destination_distance

    def test_monotonic_in_origin_distance(self, criteria):
        source = make_request("a")
        scores = [
            calculate_match_score(
                source, make_request("b", origin=offset_north(ORIGIN, meters)), criteria
            ).score
            for meters in (0, 100, 200, 300, 400, 490)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_monotonic_in_destination_distance(self, criteria):
        source = make_request("a")
        scores = [
            calculate_match_score(
                source, make_request("b", destination=offset_north(DESTINATION, meters)), criteria
            ).score
            for meters in (0, 200, 400, 600, 800, 990)
        ]
        assert scores == sorted(scores, reverse=True)
        assert scores[0] > scores[-1]

    def test_monotonic_in_time_difference(self, criteria):
        source = make_request("a")
        scores = [
            calculate_match_score(
                source,
                make_request("b", departure=DEPARTURE + timedelta(minutes=minutes)),
                criteria,
            ).score
            for minutes in (0, 5, 10, 15, 20)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_time_within_flexibility(self, criteria):
        candidate = make_request("b", departure=DEPARTURE + timedelta(minutes=10))
        result = calculate_match_score(make_request("a"), candidate, criteria)

        # 40 + 40 + 10 * (1 - 10/15) + 5 = 88.33
        assert result.score == 88
        assert result.breakdown.time_difference == 10

    def test_time_beyond_flexibility_scores_zero_time_points(self, criteria):
        candidate = make_request("b", departure=DEPARTURE + timedelta(minutes=45))
        result = calculate_match_score(make_request("a"), candidate, criteria)
        assert result.score == 85

    def test_zero_flexibility_requires_exact_time(self, criteria):
        source = make_request("a", flexibility=0)
        exact = make_request("b", flexibility=0)
        late = make_request("c", flexibility=0, departure=DEPARTURE + timedelta(minutes=5))

        assert calculate_match_score(source, exact, criteria).score == 95
        assert calculate_match_score(source, late, criteria).score == 85

    def test_scenario_nearby_requests_match(self, criteria):
        """A and B: origins 200m apart, destinations 300m apart, 10 minutes apart.

        B allows 30 minutes, so 24.0 + 28.0 + 6.67 + 5 rounds to 64.
        """
        a = make_request("a", flexibility=15)
        b = make_request(
            "b",
            origin=offset_north(ORIGIN, 200),
            destination=offset_north(DESTINATION, 300),
            departure=DEPARTURE + timedelta(minutes=10),
            flexibility=30,
        )
        assert calculate_match_score(a, b, criteria).score > 60
        assert calculate_match_score(b, a, criteria).score > 60

    def test_missing_department_withholds_bonus_only(self, criteria):
        source = make_request("a", same_department_preferred=True)
        candidate = make_request("b", same_department_preferred=True)
        result = calculate_match_score(
            source, candidate, criteria,
            make_user("user-a", department="EEE"), make_user("user-b"),
        )
        assert result.score == 95


class TestGenderCompatibility:

    def test_any_accepts_everyone(self):
        assert is_gender_compatible("any", "any", "male", "female")

    def test_specific_preference_checks_counterpart(self):
        assert not is_gender_compatible("female_only", "any", "female", "male")
        assert is_gender_compatible("female_only", "any", "female", "female")

    def test_unknown_gender_is_lenient(self):
        assert is_gender_compatible("female_only", "any", None, None)

    def test_different_specific_preferences_are_incompatible(self):
        assert not is_gender_compatible("female_only", "male_only", None, None)

    def test_equal_specific_preferences_check_both(self):
        assert is_gender_compatible("female_only", "female_only", "female", "female")
        assert not is_gender_compatible("female_only", "female_only", "male", "female")

    def test_score_drops_preference_points(self):
        source = make_request("a", gender_preference="female_only")
        result = calculate_match_score(
            source, make_request("b"), MatchingCriteria(),
            make_user("user-a", gender="F"), make_user("user-b", gender="M"),
        )
        assert result.breakdown.preferences_match is False
        assert result.score == 90


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(87.5) == 88
    assert round_half_up(87.49) == 87
