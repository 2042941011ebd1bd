"""Task lifecycle: creation, edits, completion and the job set each task needs."""

import logging
import time
from collections.abc import Iterable

from shamebot.core import db_client
from shamebot.core.config import constants, settings
from shamebot.core.errors import ConflictError, GateNotSatisfiedError
from shamebot.core.logging import span
from shamebot.core.task_locks import task_locks
from shamebot.domain.accountability import RequestStatus
from shamebot.domain.create_models import TaskCreate
from shamebot.domain.job import Job
from shamebot.domain.task import JobKind, Task, TaskStatus
from shamebot.domain.update_models import TaskUpdate
from shamebot.services import job_store


logger = logging.getLogger(__name__)


def _now(now: int | None) -> int:
    return int(time.time()) if now is None else now


async def get_task(*, task_id: str) -> Task:
    """Fetch a task, raising RecordNotFoundError if it does not exist."""
    return Task(**await db_client.get_record(collection="tasks", record_id=task_id))


async def find_task(*, task_id: str) -> Task | None:
    try:
        return await get_task(task_id=task_id)
    except KeyError:
        return None


def task_status(task: Task, *, now: int | None = None) -> TaskStatus:
    """Derived display state of a task."""
    if task.checked:
        return TaskStatus.CHECKED
    if task.overdue or (task.has_due_date and _now(now) >= task.due_at):
        return TaskStatus.OVERDUE
    return TaskStatus.OPEN


def pester_limit(task: Task) -> int:
    return task.pester_limit or settings.default_pester_limit


def derive_jobs(task: Task, *, now: int) -> dict[JobKind, int]:
    """Compute which jobs a task needs and when each should fire.

    Reminder: reminder_lead_seconds before the due time, or right away if
    that moment has already passed, unless it already fired for this due
    time. Overdue: at the due time plus the grace period. Pester: one
    interval from now, only while that is still before the due time and
    the pester budget is not spent.
    """
    jobs: dict[JobKind, int] = {}
    if task.checked:
        return jobs

    if task.has_due_date:
        if task.due_at > now and not task.reminded:
            jobs[JobKind.REMINDER] = max(now, task.due_at - settings.reminder_lead_seconds)
        if not task.overdue:
            jobs[JobKind.OVERDUE] = task.due_at + settings.overdue_grace_seconds

    if task.pester_interval and task.pester < pester_limit(task):
        first_pester = now + task.pester_interval
        if not task.has_due_date or first_pester < task.due_at:
            jobs[JobKind.PESTER] = first_pester

    return jobs


async def _reschedule(task: Task, *, now: int, kinds: Iterable[JobKind] = tuple(JobKind)) -> list[Job]:
    """Replace the jobs of the given kinds with freshly derived ones.

    Kinds the task no longer needs have their live job cancelled. Callers
    hold the task's lock.
    """
    wanted = derive_jobs(task, now=now)
    jobs = []
    for kind in kinds:
        if kind in wanted:
            jobs.append(await job_store.schedule(task_id=task.id, kind=kind, fire_at=wanted[kind]))
        elif (handle := task.job_handle(kind)) is not None:
            await job_store.cancel(job_id=handle)
    return jobs


async def _fill_missing_jobs(task: Task, *, now: int) -> list[Job]:
    """Keep the live jobs a task still needs and schedule only the kinds it lacks.

    Callers hold the task's lock.
    """
    live = {job.kind: job for job in await job_store.live_jobs(task_id=task.id)}
    wanted = derive_jobs(task, now=now)

    for kind, job in live.items():
        if kind not in wanted:
            await job_store.cancel(job_id=job.id)

    kept = [job for kind, job in live.items() if kind in wanted]
    added = [
        await job_store.schedule(task_id=task.id, kind=kind, fire_at=fire_at)
        for kind, fire_at in wanted.items()
        if kind not in live
    ]
    return kept + added


async def create_task(
    *,
    user_id: str,
    title: str,
    list_id: str | None = None,
    guild_id: str | None = None,
    content: str | None = None,
    due_at: int = 0,
    pester_interval: int | None = None,
    pester_limit: int | None = None,
    now: int | None = None,
) -> Task:
    """Create a task and schedule its reminder, overdue and pester jobs.

    Raises:
        ValueError: If the input fails validation
    """
    with span("task_service.create_task"):
        payload = TaskCreate(
            user_id=user_id,
            title=title,
            list_id=list_id,
            guild_id=guild_id,
            content=content,
            due_at=due_at,
            pester_interval=pester_interval,
            pester_limit=pester_limit,
        )
        record = await db_client.create_record(collection="tasks", data=payload.model_dump())
        task = Task(**record)

        async with task_locks.hold(task.id):
            jobs = await _reschedule(task, now=_now(now))
            task = await get_task(task_id=task.id)

        logger.info(
            "Created task",
            extra={"task_id": task.id, "user_id": user_id, "jobs": [job.kind.value for job in jobs]},
        )
        return task


async def edit_task(
    *,
    task_id: str,
    update: TaskUpdate,
    user_id: str | None = None,
    now: int | None = None,
) -> Task:
    """Apply a partial edit; a new due time or pester interval re-derives the jobs.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If user_id is given and does not own the task
        ConflictError: If the task is already checked
    """
    with span("task_service.edit_task"):
        now = _now(now)
        async with task_locks.hold(task_id):
            task = await get_task(task_id=task_id)
            if user_id is not None and task.user_id != user_id:
                msg = "Only the task owner can edit it"
                raise PermissionError(msg)
            if task.checked:
                msg = f"Task {task_id} is already checked and can't be edited"
                raise ConflictError(msg)

            changes = update.changes()
            if not changes:
                return task

            reschedule: tuple[JobKind, ...] = ()
            if "due_at" in changes:
                new_due = changes["due_at"]
                # A new deadline gets a fresh pester budget and its own reminder
                changes["pester"] = 0
                changes["reminded"] = False
                if new_due == 0 or new_due > now:
                    changes["overdue"] = False
                reschedule = tuple(JobKind)
            elif "pester_interval" in changes:
                reschedule = (JobKind.PESTER,)

            task = Task(**await db_client.update_record(collection="tasks", record_id=task_id, data=changes))
            if reschedule:
                await _reschedule(task, now=now, kinds=reschedule)
                task = await get_task(task_id=task_id)

        logger.info(
            "Edited task",
            extra={"task_id": task_id, "fields": sorted(changes), "rescheduled": [kind.value for kind in reschedule]},
        )
        return task


async def _accepted_request(task_id: str) -> dict | None:
    return await db_client.get_first_record(
        collection="accountability_requests",
        filter_query=f'task_id = "{db_client.sanitize_param(task_id)}" && status = "{RequestStatus.ACCEPTED}"',
    )


async def check_task(*, task_id: str, user_id: str) -> Task:
    """Mark a task as done, honouring the proof gate.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If user_id does not own the task
        ConflictError: If the task is already checked
        GateNotSatisfiedError: If an accepted partner has not approved a proof
    """
    with span("task_service.check_task"):
        async with task_locks.hold(task_id):
            task = await get_task(task_id=task_id)
            if task.user_id != user_id:
                msg = "Only the task owner can check it off"
                raise PermissionError(msg)
            if task.checked:
                msg = f"Task {task_id} is already checked"
                raise ConflictError(msg)

            if await _accepted_request(task_id) is not None:
                if task.proof_id is None:
                    msg = "Your accountability partner needs to approve a proof first. Submit one!"
                    raise GateNotSatisfiedError(msg)
                proof = await db_client.get_record(collection="proofs", record_id=task.proof_id)
                if not proof["approved"]:
                    msg = "Your proof hasn't been approved by your accountability partner yet."
                    raise GateNotSatisfiedError(msg)

            task = Task(**await db_client.update_record(collection="tasks", record_id=task_id, data={"checked": True}))
            cancelled = await job_store.cancel_all(task_id=task_id)

        logger.info("Checked task", extra={"task_id": task_id, "cancelled_jobs": cancelled})
        return task


async def delete_task(*, task_id: str, user_id: str | None = None) -> None:
    """Delete a task together with its jobs, proofs and accountability requests.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If user_id is given and does not own the task
    """
    with span("task_service.delete_task"):
        async with task_locks.hold(task_id):
            task = await get_task(task_id=task_id)
            if user_id is not None and task.user_id != user_id:
                msg = "Only the task owner can delete it"
                raise PermissionError(msg)

            row_id = int(task.id)
            async with db_client.transaction() as conn:
                cancelled = await job_store.cancel_live_jobs(conn, task_id=row_id)
                proofs = await conn.execute("DELETE FROM proofs WHERE task_id = ?", (row_id,))
                requests = await conn.execute("DELETE FROM accountability_requests WHERE task_id = ?", (row_id,))
                await conn.execute("DELETE FROM tasks WHERE id = ?", (row_id,))

        logger.info(
            "Deleted task",
            extra={
                "task_id": task_id,
                "cancelled_jobs": len(cancelled),
                "proofs": proofs.rowcount,
                "requests": requests.rowcount,
            },
        )


async def mark_overdue(*, task_id: str) -> Task:
    """Flag an unchecked task as overdue. Called by the dispatcher, which holds the task lock."""
    with span("task_service.mark_overdue"):
        task = Task(**await db_client.update_record(collection="tasks", record_id=task_id, data={"overdue": True}))
        logger.info("Task is overdue", extra={"task_id": task_id, "user_id": task.user_id})
        return task


async def record_pester(*, task_id: str, pester: int) -> Task:
    """Store how many pesters have fired. Called by the dispatcher, which holds the task lock."""
    return Task(**await db_client.update_record(collection="tasks", record_id=task_id, data={"pester": pester}))


async def record_reminder(*, task_id: str) -> Task:
    """Note that the reminder for the current due time fired. Called by the dispatcher, which holds the task lock."""
    return Task(**await db_client.update_record(collection="tasks", record_id=task_id, data={"reminded": True}))


async def reconcile_jobs(*, task_id: str, now: int | None = None) -> list[Job]:
    """Bring one task's job set in line with its fields.

    Live jobs the task still needs are kept as they are, so a restart
    resumes them instead of firing them again. Only missing kinds are
    scheduled.
    """
    with span("task_service.reconcile_jobs"):
        async with task_locks.hold(task_id):
            task = await get_task(task_id=task_id)
            jobs = await _fill_missing_jobs(task, now=_now(now))

        logger.info("Reconciled task jobs", extra={"task_id": task_id, "jobs": len(jobs)})
        return jobs


async def resync_all_tasks(*, now: int | None = None) -> int:
    """Reconcile the jobs of every unchecked task. Run at startup.

    Returns:
        Number of tasks reconciled
    """
    with span("task_service.resync_all_tasks"):
        now = _now(now)
        count = 0
        page = 1
        while True:
            records = await db_client.list_records(
                collection="tasks",
                filter_query='checked = "false"',
                page=page,
                per_page=constants.DEFAULT_PER_PAGE_LIMIT,
            )
            for record in records:
                try:
                    await reconcile_jobs(task_id=record["id"], now=now)
                    count += 1
                except KeyError:
                    # Deleted while we were iterating
                    continue
            if len(records) < constants.DEFAULT_PER_PAGE_LIMIT:
                break
            page += 1

        logger.info("Resynced task jobs", extra={"tasks": count})
        return count
