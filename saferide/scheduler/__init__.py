"""
Scheduler Package

Periodic lifecycle sweeps with monitoring and error handling.
"""

from saferide.scheduler.jobs import (
    ALL_JOBS,
    confirmation_reminder_job,
    confirmation_timeout_job,
    expire_old_matches_job,
    expired_request_cleanup_job,
)

__all__ = [
    "ALL_JOBS",
    "confirmation_reminder_job",
    "confirmation_timeout_job",
    "expire_old_matches_job",
    "expired_request_cleanup_job",
]
