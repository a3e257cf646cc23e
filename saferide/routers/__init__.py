"""SafeRide Routers Package"""

from saferide.routers import (
    matches,
    requests,
    scheduler,
)

__all__ = [
    "matches",
    "requests",
    "scheduler",
]
