"""Job dispatcher: fires due jobs and delivers their notifications.

Jobs of different tasks run concurrently; jobs of one task run one after
another under that task's lock. State changes happen under the lock,
delivery happens after it is released so a slow Discord call never holds
up a user action on the same task.
"""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from enum import StrEnum

from pydantic import BaseModel, Field

from shamebot.core import message_templates
from shamebot.core.admin_notifier import notify_admins
from shamebot.core.config import settings
from shamebot.core.errors import DeliveryFailureError, ErrorKind, StaleJobError
from shamebot.core.logging import log_with_task_context, span
from shamebot.core.scheduler_tracker import retry_job_with_backoff
from shamebot.core.task_locks import task_locks
from shamebot.domain.job import Job, JobStatus
from shamebot.domain.task import JobKind
from shamebot.services import accountability_service, job_store, notification_service, task_service
from shamebot.services.notification_service import Notification


logger = logging.getLogger(__name__)


class FiringOutcome(StrEnum):
    """What happened to a single due job."""

    DELIVERED = "delivered"
    FAILED = "failed"
    STALE = "stale"


class DispatchReport(BaseModel):
    """Counts for one dispatch pass."""

    fired: int = Field(default=0, description="Jobs claimed and run")
    delivered: int = Field(default=0, description="Firings whose notifications went out (or had none)")
    failed: int = Field(default=0, description="Firings whose delivery failed after all retries")
    stale: int = Field(default=0, description="Superseded firings that were dropped")

    def record(self, outcome: FiringOutcome) -> None:
        if outcome == FiringOutcome.STALE:
            self.stale += 1
            return
        self.fired += 1
        if outcome == FiringOutcome.DELIVERED:
            self.delivered += 1
        else:
            self.failed += 1


async def _pester(job: Job, now: int) -> list[Notification]:
    task = await task_service.find_task(task_id=job.task_id)
    if task is None or task.checked:
        return []
    # Once the due time has passed the overdue notice takes over
    if task.has_due_date and now >= task.due_at:
        return []

    pester_count = task.pester + 1
    await task_service.record_pester(task_id=task.id, pester=pester_count)

    if task.pester_interval and pester_count < task_service.pester_limit(task):
        next_pester = now + task.pester_interval
        if not task.has_due_date or next_pester < task.due_at:
            await job_store.schedule(task_id=task.id, kind=JobKind.PESTER, fire_at=next_pester)
    else:
        logger.info("Pester budget spent", extra={"task_id": task.id, "pester": pester_count})

    partner = await accountability_service.get_partner(task_id=task.id)
    message = message_templates.pester(user_id=task.user_id, title=task.title, partner_id=partner, due_at=task.due_at)
    return [notification_service.for_task(task, message)]


async def _reminder(job: Job, now: int) -> list[Notification]:
    task = await task_service.find_task(task_id=job.task_id)
    if task is None or task.checked:
        return []

    task = await task_service.record_reminder(task_id=task.id)
    message = message_templates.reminder(user_id=task.user_id, title=task.title, due_at=task.due_at)
    return [notification_service.for_task(task, message)]


async def _overdue(job: Job, now: int) -> list[Notification]:
    task = await task_service.find_task(task_id=job.task_id)
    if task is None or task.checked:
        return []

    task = await task_service.mark_overdue(task_id=task.id)
    partner = await accountability_service.get_partner(task_id=task.id)
    message = message_templates.overdue(user_id=task.user_id, title=task.title, partner_id=partner)
    return [notification_service.for_task(task, message)]


_HANDLERS: dict[JobKind, Callable[[Job, int], Awaitable[list[Notification]]]] = {
    JobKind.PESTER: _pester,
    JobKind.REMINDER: _reminder,
    JobKind.OVERDUE: _overdue,
}


async def _fire(job: Job, *, now: int) -> list[Notification]:
    """Run a job's handler if the job is still current. Caller holds the task lock.

    Raises:
        StaleJobError: If the job was superseded, cancelled or already claimed
    """
    current = await job_store.get_job(job_id=job.id)
    if current.status != JobStatus.SCHEDULED or not await job_store.is_current(current):
        await job_store.mark_stale(job_id=job.id)
        msg = f"Job {job.id} is no longer current ({current.status})"
        raise StaleJobError(msg)

    if not await job_store.claim(job_id=job.id):
        msg = f"Job {job.id} was claimed by another worker"
        raise StaleJobError(msg)

    return await _HANDLERS[current.kind](current, now)


async def _deliver(job: Job, notifications: list[Notification]) -> FiringOutcome:
    if not notifications:
        await job_store.mark_delivered(job_id=job.id, attempts=0)
        return FiringOutcome.DELIVERED

    pending = list(notifications)

    async def send_pending() -> None:
        while pending:
            result = await notification_service.deliver(pending[0], max_retries=1)
            if not result.success:
                raise DeliveryFailureError(result.error or "notification sink reported failure")
            pending.pop(0)

    outcome = await retry_job_with_backoff(
        send_pending,
        job_name=f"{job.kind}_delivery",
        max_retries=settings.dispatch_max_attempts,
        base_delay=settings.dispatch_backoff_base_seconds,
        dead_letter_threshold=1,
        error_kind=ErrorKind.DELIVERY_FAILURE,
        context=f"{job.kind} job {job.id} for task {job.task_id}",
    )

    if outcome.success:
        await job_store.mark_delivered(job_id=job.id, attempts=outcome.attempts)
        return FiringOutcome.DELIVERED

    await job_store.mark_failed(job_id=job.id, error=outcome.error or "delivery failed", attempts=outcome.attempts)
    return FiringOutcome.FAILED


async def dispatch_job(job: Job, *, now: int | None = None) -> FiringOutcome:
    """Fire one due job and deliver what it produces."""
    now = int(time.time()) if now is None else now

    async with task_locks.hold(job.task_id):
        try:
            notifications = await _fire(job, now=now)
        except StaleJobError as e:
            log_with_task_context(
                logger, "debug", "Dropped stale job", task_id=job.task_id, job_id=job.id, reason=str(e)
            )
            return FiringOutcome.STALE
        except Exception as e:
            # A claimed job that blew up is failed, never left running
            logger.error(
                "Job handler failed",
                extra={"job_id": job.id, "task_id": job.task_id, "job_kind": job.kind.value, "error": str(e)},
            )
            await job_store.mark_failed(job_id=job.id, error=str(e), attempts=0)
            await notify_admins(
                message=f"{job.kind} job {job.id} for task {job.task_id} failed before delivery: {e}",
                severity="critical",
                error_kind=ErrorKind.UNKNOWN,
            )
            return FiringOutcome.FAILED

    return await _deliver(job, notifications)


async def _dispatch_task(jobs: list[Job], now: int, report: DispatchReport) -> None:
    for job in jobs:
        report.record(await dispatch_job(job, now=now))


async def dispatch_due_jobs(*, now: int | None = None) -> DispatchReport:
    """Fire every job that is due, concurrently across tasks."""
    with span("dispatcher.dispatch_due_jobs"):
        now = int(time.time()) if now is None else now
        due = await job_store.due_jobs(now=now)

        by_task: dict[str, list[Job]] = defaultdict(list)
        for job in due:
            by_task[job.task_id].append(job)

        report = DispatchReport()
        await asyncio.gather(*(_dispatch_task(jobs, now, report) for jobs in by_task.values()))

        if due:
            logger.info("Dispatched due jobs", extra=report.model_dump())
        return report
