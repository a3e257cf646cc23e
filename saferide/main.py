"""
SafeRide Backend - FastAPI Application

Main application entry point with middleware, routers, scheduler and
exception handlers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from saferide.config import settings
from saferide.database import close_db, get_db, get_redis, init_db
from saferide.exceptions import SafeRideError
from saferide.routers import matches, requests, scheduler

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Register the lifecycle sweeps on an AsyncIOScheduler (not started)."""
    from saferide.scheduler import (
        confirmation_reminder_job,
        confirmation_timeout_job,
        expire_old_matches_job,
        expired_request_cleanup_job,
    )

    job_scheduler = AsyncIOScheduler()
    jobs = [
        (expire_old_matches_job, settings.expire_matches_interval_minutes, "expire_old_matches"),
        (confirmation_timeout_job, settings.confirmation_timeout_interval_minutes, "confirmation_timeout"),
        (confirmation_reminder_job, settings.confirmation_reminder_interval_minutes, "confirmation_reminder"),
        (expired_request_cleanup_job, settings.request_cleanup_interval_minutes, "expired_request_cleanup"),
    ]
    for job, minutes, job_id in jobs:
        job_scheduler.add_job(
            job.execute,
            "interval",
            minutes=minutes,
            id=job_id,
            name=job.name,
            max_instances=1,
            coalesce=True,  # Skip if previous run is still executing
        )
    return job_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Initialize database connections
    - Initialize Firebase (auth + FCM)
    - Start the lifecycle scheduler
    - Cleanup on shutdown
    """
    await init_db()

    logger.info("=" * 50)
    logger.info("SAFERIDE BACKEND STARTUP")

    try:
        await get_db().client.admin.command("ping")
        logger.info("Connected to db")
    except Exception as e:
        logger.error(f"FAILED to connect to db: {e}")

    try:
        from saferide.services.auth_service import init_firebase

        init_firebase()
        logger.info("Firebase connected")
    except Exception as e:
        logger.warning(f"Firebase initialization failed: {e}")

    redis = get_redis()
    if redis is not None:
        try:
            await redis.ping()
            logger.info("Redis connected")
        except Exception as e:
            logger.error(f"FAILED to connect to Redis: {e}")

    job_scheduler = None
    if settings.scheduler_enabled:
        try:
            job_scheduler = create_scheduler()
            job_scheduler.start()
            logger.info(
                "Scheduler started with 4 jobs: "
                f"Expire matches ({settings.expire_matches_interval_minutes}m) | "
                f"Confirmation timeout ({settings.confirmation_timeout_interval_minutes}m) | "
                f"Reminders ({settings.confirmation_reminder_interval_minutes}m) | "
                f"Request cleanup ({settings.request_cleanup_interval_minutes}m)"
            )
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)
            job_scheduler = None

    logger.info("=" * 50)

    yield

    if job_scheduler:
        job_scheduler.shutdown()
        logger.info("Scheduler stopped")

    await close_db()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="SafeRide API",
    description="""
    SafeRide - University Ride Sharing Matching API

    ## Features
    - Ride request creation and candidate search
    - Multi-party match formation with cost split
    - Confirmation, departure and ride progress

    ## Authentication
    All authenticated endpoints require a valid Firebase ID token in the
    Authorization header: `Authorization: Bearer <firebase_id_token>`
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SafeRideError)
async def saferide_exception_handler(request: Request, exc: SafeRideError):
    """Domain errors carry their own HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    SECURITY: Do not leak internal error details.
    """
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Something went wrong. Please try again shortly."},
    )


# =============================================================================
# Routers
# =============================================================================

app.include_router(requests.router, prefix=f"{settings.api_v1_str}/requests", tags=["Ride Requests"])
app.include_router(matches.router, prefix=f"{settings.api_v1_str}/matches", tags=["Matches"])
app.include_router(scheduler.router, prefix=settings.api_v1_str, tags=["Scheduler"])


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check."""
    return {"status": "healthy", "service": "saferide"}
