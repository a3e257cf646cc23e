"""
Scheduler Monitoring Router

Provides endpoints to monitor scheduled job health and status.
"""

from typing import Dict

from fastapi import APIRouter, Depends

from saferide.dependencies import get_current_user_id

router = APIRouter()


@router.get("/scheduler/status", dependencies=[Depends(get_current_user_id)])
async def get_scheduler_status() -> Dict:
    """
    Get the status of all scheduled jobs.

    Returns job execution metrics including:
    - Execution count
    - Failure count
    - Last execution time and result
    - Last error (if any)
    """
    from saferide.scheduler import ALL_JOBS

    job_statuses = [job.status() for job in ALL_JOBS]
    unhealthy_jobs = [j for j in job_statuses if j["health"] == "unhealthy"]

    return {
        "overall_health": "unhealthy" if unhealthy_jobs else "healthy",
        "jobs": job_statuses,
        "unhealthy_jobs": len(unhealthy_jobs),
        "total_jobs": len(job_statuses),
    }
