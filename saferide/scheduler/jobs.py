"""
Scheduled Jobs for SafeRide Backend

Periodic reconciliation sweeps with:
- Proper error handling and logging
- Job status tracking
- Escalation on repeated failures

Every sweep is idempotent, so an overlapping or retried tick is harmless.
"""

import logging
from typing import Any, Callable, Optional

from saferide.services.lifecycle_service import MatchLifecycleService
from saferide.services.ride_service import RideService
from saferide.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

FAILURE_ALERT_THRESHOLD = 3


def _default_lifecycle_service() -> MatchLifecycleService:
    from saferide.database import get_store
    from saferide.services.notification_service import NotificationService

    store = get_store()
    return MatchLifecycleService(store, NotificationService(store))


def _default_ride_service() -> RideService:
    from saferide.database import get_store

    return RideService(get_store())


class ScheduledJob:
    """Base class for scheduled jobs with error handling and logging."""

    def __init__(self, name: str):
        self.name = name
        self.execution_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.last_execution = None
        self.last_error: Optional[str] = None
        self.last_result: Any = None

    async def execute(self):
        """Execute the job with error handling and metrics."""
        self.execution_count += 1
        start_time = utc_now()

        try:
            logger.info(f"[{self.name}] Starting execution #{self.execution_count}")
            self.last_result = await self._run()
            self.last_execution = utc_now()
            self.consecutive_failures = 0
            duration = (self.last_execution - start_time).total_seconds()
            logger.info(
                f"[{self.name}] Completed in {duration:.2f}s (result: {self.last_result})"
            )

        except Exception as e:
            self.failure_count += 1
            self.consecutive_failures += 1
            self.last_error = str(e)
            logger.error(f"[{self.name}] Failed: {e}", exc_info=True)

            if self.consecutive_failures >= FAILURE_ALERT_THRESHOLD:
                self._alert_failure(e)

    async def _run(self):
        """Override this method in subclasses."""
        raise NotImplementedError

    def _alert_failure(self, error: Exception):
        logger.critical(
            f"[{self.name}] CRITICAL: Failed {self.consecutive_failures} times in a row. "
            f"Last error: {error}"
        )

    def status(self) -> dict:
        return {
            "name": self.name,
            "execution_count": self.execution_count,
            "failure_count": self.failure_count,
            "last_execution": (
                self.last_execution.isoformat() if self.last_execution else None
            ),
            "last_error": self.last_error,
            "last_result": self.last_result,
            "health": (
                "healthy"
                if self.consecutive_failures < FAILURE_ALERT_THRESHOLD
                else "unhealthy"
            ),
        }

    def reset_metrics(self):
        self.execution_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.last_error = None


class LifecycleJob(ScheduledJob):
    """Job that runs one sweep of the match lifecycle service."""

    def __init__(
        self,
        name: str,
        service_factory: Optional[Callable[[], MatchLifecycleService]] = None,
    ):
        super().__init__(name)
        self.service_factory = service_factory or _default_lifecycle_service


class ExpireOldMatchesJob(LifecycleJob):
    """
    Cancel pending matches whose departure time has passed.

    Frequency: Every 30 minutes
    """

    def __init__(self, service_factory=None):
        super().__init__("ExpireOldMatches", service_factory)

    async def _run(self):
        return await self.service_factory().expire_old_matches()


class ConfirmationTimeoutJob(LifecycleJob):
    """
    Cancel pending matches not fully confirmed within the confirmation window.

    Frequency: Every 15 minutes
    """

    def __init__(self, service_factory=None):
        super().__init__("ConfirmationTimeout", service_factory)

    async def _run(self):
        return await self.service_factory().check_confirmation_timeouts()


class ConfirmationReminderJob(LifecycleJob):
    """
    Remind unconfirmed participants a few minutes after a match forms.

    Frequency: Every 5 minutes
    """

    def __init__(self, service_factory=None):
        super().__init__("ConfirmationReminder", service_factory)

    async def _run(self):
        return await self.service_factory().send_confirmation_reminders()


class ExpiredRequestCleanupJob(ScheduledJob):
    """
    Cancel searching requests whose flexibility window has passed.

    Frequency: Every hour
    """

    def __init__(self, service_factory: Optional[Callable[[], RideService]] = None):
        super().__init__("ExpiredRequestCleanup")
        self.service_factory = service_factory or _default_ride_service

    async def _run(self):
        return await self.service_factory().cleanup_expired_requests()


# Global job instances
expire_old_matches_job = ExpireOldMatchesJob()
confirmation_timeout_job = ConfirmationTimeoutJob()
confirmation_reminder_job = ConfirmationReminderJob()
expired_request_cleanup_job = ExpiredRequestCleanupJob()

ALL_JOBS = [
    expire_old_matches_job,
    confirmation_timeout_job,
    confirmation_reminder_job,
    expired_request_cleanup_job,
]
