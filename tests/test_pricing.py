"""
Tests for fare estimation and cost split.
"""

import pytest

from saferide.config import Settings
from saferide.exceptions import ValidationError
from saferide.services.pricing import estimate_ride_cost, split_cost, vehicle_multiplier


@pytest.fixture
def fares():
    return Settings(base_fare=50, per_km_rate=30, large_vehicle_multiplier=1.5)


class TestEstimateRideCost:

    def test_base_plus_distance(self, fares):
        assert estimate_ride_cost(2.0, 2, fares) == 110

    def test_rounds_once_after_multiplier(self, fares):
        # 50 + 30 * 1.25 = 87.5 -> 88
        assert estimate_ride_cost(1.25, 1, fares) == 88
        # 87.5 * 1.5 = 131.25 -> 131
        assert estimate_ride_cost(1.25, 4, fares) == 131

    def test_zero_distance_is_base_fare(self, fares):
        assert estimate_ride_cost(0, 1, fares) == 50

    def test_negative_distance(self, fares):
        with pytest.raises(ValidationError):
            estimate_ride_cost(-1, 1, fares)

    def test_no_seats(self, fares):
        with pytest.raises(ValidationError):
            estimate_ride_cost(1, 0, fares)


class TestVehicleMultiplier:

    def test_threshold(self, fares):
        assert vehicle_multiplier(3, fares) == 1.0
        assert vehicle_multiplier(4, fares) == 1.5


class TestSplitCost:

    def test_even_split(self):
        assert split_cost(110, 2) == 55

    def test_rounded_to_cents(self):
        assert split_cost(110, 3) == 36.67

    def test_zero_participants(self):
        with pytest.raises(ValidationError):
            split_cost(110, 0)
