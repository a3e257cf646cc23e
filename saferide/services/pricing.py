"""
Fare estimation and per-person split (BDT).

Cost is estimated locally from the meeting point -> drop-off point distance;
no ride-hailing API is consulted.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from saferide.config import Settings, get_settings
from saferide.exceptions import ValidationError

_CENTS = Decimal("0.01")


def _to_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def vehicle_multiplier(total_seats: int, settings: Optional[Settings] = None) -> float:
    """Larger vehicle assumed when more than the threshold seats are needed."""
    settings = settings or get_settings()
    if total_seats > settings.large_vehicle_seat_threshold:
        return settings.large_vehicle_multiplier
    return 1.0


def estimate_ride_cost(
    distance_km: float,
    total_seats: int,
    settings: Optional[Settings] = None,
) -> float:
    """
    Returns the estimated total fare.

    total = round((base_fare + per_km_rate * distance_km) * multiplier), half-up
    """
    if distance_km < 0:
        raise ValidationError("Distance cannot be negative")
    if total_seats < 1:
        raise ValidationError("Total seats must be at least 1")
    settings = settings or get_settings()

    fare = (settings.base_fare + settings.per_km_rate * distance_km) * vehicle_multiplier(
        total_seats, settings
    )
    return float(Decimal(str(fare)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_cost(total_cost: float, participant_count: int) -> float:
    """Equal split by participant count (not by seats), rounded to 0.01."""
    if participant_count < 1:
        raise ValidationError("Cannot split cost across zero participants")
    if total_cost < 0:
        raise ValidationError("Total cost cannot be negative")
    return _to_money(total_cost / participant_count)
