"""shamebot - task accountability engine behind a Discord bot."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from shamebot.core.config import constants, settings
from shamebot.core.db_client import close_connection, init_db
from shamebot.core.logging import configure_logfire, instrument_fastapi
from shamebot.core.scheduler import DISPATCH_JOB_NAME, scheduler, start_scheduler, stop_scheduler
from shamebot.core.scheduler_tracker import job_tracker
from shamebot.interface.jobs_router import router as jobs_router
from shamebot.services import job_store, notification_service, task_service


logger = logging.getLogger(__name__)


async def check_discord_connectivity() -> None:
    """Verify the bot token is accepted by Discord.

    Raises:
        ConnectionError: If unable to reach Discord or the token is rejected
    """
    try:
        url = f"{settings.discord_api_base_url}/users/@me"
        headers = {"Authorization": f"Bot {settings.discord_bot_token}"}

        async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
            response = await client.get(url, headers=headers)
            if response.is_success:
                logger.info("startup_validation", extra={"service": "discord", "status": "ok"})
            else:
                raise ConnectionError(f"Discord returned status {response.status_code}")
    except Exception as e:
        logger.error("startup_validation", extra={"service": "discord", "status": "failed", "error": str(e)})
        raise ConnectionError(f"Discord connectivity check failed: {e}") from e


async def validate_startup_configuration() -> None:
    """Validate required credentials and Discord connectivity, exiting on failure."""
    logger.info("startup_validation_begin")

    try:
        settings.require_credential("discord_bot_token", "Discord bot")
        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_discord_connectivity()

        logger.info("startup_validation_complete", extra={"status": "ok"})

    except (ValueError, ConnectionError) as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so validation logs are captured
    configure_logfire()

    await validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    # Jobs a crash left mid-flight are failed, then open tasks get any jobs they are missing
    await job_store.recover_interrupted_jobs()
    await task_service.resync_all_tasks()

    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await notification_service.drain()
    await close_connection()


app = FastAPI(
    title="shamebot",
    description="Task lifecycle and accountability engine for the shamebot Discord bot",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(jobs_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_names = {DISPATCH_JOB_NAME, *job_tracker.tracked_jobs()}

    job_statuses = {}
    for job_name in sorted(job_names):
        job_statuses[job_name] = await job_tracker.get_job_status(job_name)

    dlq = job_tracker.get_dead_letter_queue()

    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "scheduler_running": scheduler.running,
            "jobs": job_statuses,
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
