"""Scheduler runtime: polls the job store and dispatches due jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shamebot.core.config import settings
from shamebot.core.scheduler_tracker import retry_job_with_backoff
from shamebot.services import dispatcher


logger = logging.getLogger(__name__)

DISPATCH_JOB_NAME = "dispatch_due_jobs"

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def run_dispatch_cycle() -> None:
    """Fire every job that is due right now."""
    report = await dispatcher.dispatch_due_jobs()
    if report.failed:
        logger.warning("Dispatch cycle had delivery failures", extra=report.model_dump())


async def _tracked_dispatch_cycle() -> None:
    # A cycle that raises is retried on the next tick, not immediately
    await retry_job_with_backoff(run_dispatch_cycle, DISPATCH_JOB_NAME, max_retries=1)


def start_scheduler() -> None:
    """Start the scheduler and register the dispatch job.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    scheduler.add_job(
        _tracked_dispatch_cycle,
        trigger=IntervalTrigger(seconds=settings.dispatch_poll_interval_seconds),
        id=DISPATCH_JOB_NAME,
        name="Dispatch Due Task Jobs",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled dispatch job: every {settings.dispatch_poll_interval_seconds}s")

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    if scheduler.running:
        scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
