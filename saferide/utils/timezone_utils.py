"""Centralized Timezone Utilities - All datetime operations should use these functions."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class Clock(ABC):
    """Source of the current instant. Services take one so tests can freeze time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC instant."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return utc_now()
