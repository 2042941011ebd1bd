"""Durable job store: schedule, cancel and claim task notification jobs.

Every (task, kind) pair carries a generation counter in job_generations.
Scheduling or cancelling a live job bumps it, so a firing whose job row
holds an older generation is recognisably stale. The sequences that touch
the generation, the job row and the task's handle column run inside one
SQLite transaction.
"""

import logging
import time
from typing import Any

import aiosqlite

from shamebot.core import db_client
from shamebot.core.admin_notifier import notify_admins
from shamebot.core.config import constants
from shamebot.core.db_client import RecordNotFoundError
from shamebot.core.errors import ErrorKind
from shamebot.core.logging import span
from shamebot.domain.job import Job, JobStatus
from shamebot.domain.task import JOB_HANDLE_FIELDS, JobKind


logger = logging.getLogger(__name__)


def _row_id(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_job(record: dict[str, Any]) -> Job:
    return Job(**record)


async def _generation(conn: aiosqlite.Connection, task_id: int, kind: JobKind) -> int:
    row = await db_client.fetch_one(
        conn,
        "SELECT generation FROM job_generations WHERE task_id = ? AND kind = ?",
        (task_id, kind.value),
    )
    return int(row["generation"]) if row else 0


async def _bump_generation(conn: aiosqlite.Connection, task_id: int, kind: JobKind) -> int:
    await conn.execute(
        """
        INSERT INTO job_generations (task_id, kind, generation) VALUES (?, ?, 1)
        ON CONFLICT (task_id, kind) DO UPDATE SET generation = generation + 1
        """,
        (task_id, kind.value),
    )
    return await _generation(conn, task_id, kind)


async def _clear_handle(conn: aiosqlite.Connection, *, task_id: int, kind: JobKind, job_id: int) -> None:
    field = JOB_HANDLE_FIELDS[kind]
    await conn.execute(
        f"UPDATE tasks SET {field} = NULL WHERE id = ? AND {field} = ?",  # noqa: S608 - field comes from JOB_HANDLE_FIELDS
        (task_id, job_id),
    )


async def schedule(*, task_id: str, kind: JobKind, fire_at: int) -> Job:
    """Schedule a job, superseding any live job of the same kind for the task.

    Raises:
        RecordNotFoundError: If the task does not exist
    """
    with span("job_store.schedule"):
        row_id = _row_id(task_id)
        field = JOB_HANDLE_FIELDS[kind]

        async with db_client.transaction() as conn:
            task = await db_client.fetch_one(conn, "SELECT id FROM tasks WHERE id = ?", (row_id,))
            if task is None:
                msg = f"Task not found: {task_id}"
                raise RecordNotFoundError(msg)

            superseded = await conn.execute(
                "UPDATE jobs SET status = ? WHERE task_id = ? AND kind = ? AND status = ?",
                (JobStatus.CANCELLED.value, row_id, kind.value, JobStatus.SCHEDULED.value),
            )
            generation = await _bump_generation(conn, row_id, kind)
            cursor = await conn.execute(
                "INSERT INTO jobs (task_id, kind, fire_at, generation, status) VALUES (?, ?, ?, ?, ?)",
                (row_id, kind.value, fire_at, generation, JobStatus.SCHEDULED.value),
            )
            job_id = cursor.lastrowid
            await conn.execute(
                f"UPDATE tasks SET {field} = ? WHERE id = ?",  # noqa: S608 - field comes from JOB_HANDLE_FIELDS
                (job_id, row_id),
            )

        logger.info(
            "Scheduled job",
            extra={
                "task_id": task_id,
                "job_id": job_id,
                "job_kind": kind.value,
                "fire_at": fire_at,
                "generation": generation,
                "superseded": superseded.rowcount,
            },
        )
        return Job(
            id=str(job_id),
            task_id=str(row_id),
            kind=kind,
            fire_at=fire_at,
            generation=generation,
        )


async def cancel(*, job_id: str) -> bool:
    """Cancel a live job. Idempotent.

    Cancelling a job that already fired, failed, was cancelled or never
    existed is a no-op.

    Returns:
        True if a live job was cancelled
    """
    with span("job_store.cancel"):
        row_id = _row_id(job_id)
        if row_id is None:
            return False

        async with db_client.transaction() as conn:
            record = await db_client.fetch_one(conn, "SELECT * FROM jobs WHERE id = ?", (row_id,))
            if record is None or record["status"] != JobStatus.SCHEDULED:
                return False

            job = _to_job(record)
            task_row = int(job.task_id)
            await conn.execute(
                "UPDATE jobs SET status = ? WHERE id = ? AND status = ?",
                (JobStatus.CANCELLED.value, row_id, JobStatus.SCHEDULED.value),
            )
            if job.generation == await _generation(conn, task_row, job.kind):
                await _bump_generation(conn, task_row, job.kind)
            await _clear_handle(conn, task_id=task_row, kind=job.kind, job_id=row_id)

        logger.info("Cancelled job", extra={"job_id": job_id, "task_id": job.task_id, "job_kind": job.kind.value})
        return True


async def cancel_live_jobs(conn: aiosqlite.Connection, *, task_id: int) -> list[Job]:
    """Cancel every live job of a task on a connection that is already inside a transaction."""
    cursor = await conn.execute(
        "SELECT * FROM jobs WHERE task_id = ? AND status = ?",
        (task_id, JobStatus.SCHEDULED.value),
    )
    live = [_to_job(record) for record in db_client.rows_to_records(cursor, list(await cursor.fetchall()))]

    await conn.execute(
        "UPDATE jobs SET status = ? WHERE task_id = ? AND status = ?",
        (JobStatus.CANCELLED.value, task_id, JobStatus.SCHEDULED.value),
    )
    for kind in {job.kind for job in live}:
        await _bump_generation(conn, task_id, kind)
    await conn.execute(
        "UPDATE tasks SET pester_job = NULL, overdue_job = NULL, reminder_job = NULL WHERE id = ?",
        (task_id,),
    )
    return live


async def cancel_all(*, task_id: str) -> int:
    """Cancel every live job of a task and clear its handle columns.

    Returns:
        Number of jobs cancelled
    """
    with span("job_store.cancel_all"):
        row_id = _row_id(task_id)
        if row_id is None:
            return 0

        async with db_client.transaction() as conn:
            live = await cancel_live_jobs(conn, task_id=row_id)

        if live:
            logger.info("Cancelled all jobs for task", extra={"task_id": task_id, "cancelled": len(live)})
        return len(live)


async def due_jobs(*, now: int | None = None, limit: int = constants.DUE_JOBS_BATCH_LIMIT) -> list[Job]:
    """Return scheduled jobs whose fire time has passed, oldest first."""
    now = int(time.time()) if now is None else now
    records = await db_client.list_records(
        collection="jobs",
        filter_query=f'status = "{JobStatus.SCHEDULED}" && fire_at <= "{now}"',
        sort="fire_at ASC",
        per_page=limit,
    )
    return [_to_job(record) for record in records]


async def get_job(*, job_id: str) -> Job:
    """Fetch a job by handle, raising RecordNotFoundError if unknown."""
    return _to_job(await db_client.get_record(collection="jobs", record_id=job_id))


async def current_generation(*, task_id: str, kind: JobKind) -> int:
    conn = await db_client.get_connection()
    row_id = _row_id(task_id)
    if row_id is None:
        return 0
    return await _generation(conn, row_id, kind)


async def is_current(job: Job) -> bool:
    """Whether the job still carries the live generation for its task and kind."""
    return job.generation == await current_generation(task_id=job.task_id, kind=job.kind)


async def claim(*, job_id: str) -> bool:
    """Move a job from scheduled to running if it is still current.

    Compare-and-set: of any number of concurrent claimers, exactly one wins.
    """
    row_id = _row_id(job_id)
    if row_id is None:
        return False

    async with db_client.transaction() as conn:
        cursor = await conn.execute(
            """
            UPDATE jobs SET status = ?
            WHERE id = ? AND status = ?
              AND generation = (
                  SELECT generation FROM job_generations g
                  WHERE g.task_id = jobs.task_id AND g.kind = jobs.kind
              )
            """,
            (JobStatus.RUNNING.value, row_id, JobStatus.SCHEDULED.value),
        )
    return cursor.rowcount == 1


async def _finish(
    *,
    job_id: str,
    status: JobStatus,
    from_status: JobStatus,
    attempts: int | None = None,
    error: str | None = None,
) -> bool:
    row_id = _row_id(job_id)
    if row_id is None:
        return False

    async with db_client.transaction() as conn:
        record = await db_client.fetch_one(conn, "SELECT * FROM jobs WHERE id = ?", (row_id,))
        if record is None or record["status"] != from_status:
            return False

        job = _to_job(record)
        await conn.execute(
            "UPDATE jobs SET status = ?, attempts = ?, last_error = ? WHERE id = ?",
            (
                status.value,
                job.attempts if attempts is None else attempts,
                error if error is not None else job.last_error,
                row_id,
            ),
        )
        await _clear_handle(conn, task_id=int(job.task_id), kind=job.kind, job_id=row_id)
    return True


async def mark_delivered(*, job_id: str, attempts: int = 1) -> bool:
    return await _finish(job_id=job_id, status=JobStatus.DELIVERED, from_status=JobStatus.RUNNING, attempts=attempts)


async def mark_failed(*, job_id: str, error: str, attempts: int) -> bool:
    """Record a firing whose delivery kept failing. It is never re-fired."""
    return await _finish(
        job_id=job_id,
        status=JobStatus.FAILED,
        from_status=JobStatus.RUNNING,
        attempts=attempts,
        error=error,
    )


async def mark_stale(*, job_id: str) -> bool:
    return await _finish(job_id=job_id, status=JobStatus.STALE, from_status=JobStatus.SCHEDULED)


async def recover_interrupted_jobs() -> list[Job]:
    """Fail jobs left running by a crash so they never fire twice.

    Called once at startup, before the dispatcher starts polling.
    """
    with span("job_store.recover_interrupted_jobs"):
        async with db_client.transaction() as conn:
            cursor = await conn.execute("SELECT * FROM jobs WHERE status = ?", (JobStatus.RUNNING.value,))
            interrupted = [
                _to_job(record) for record in db_client.rows_to_records(cursor, list(await cursor.fetchall()))
            ]
            await conn.execute(
                "UPDATE jobs SET status = ?, last_error = ? WHERE status = ?",
                (JobStatus.FAILED.value, "interrupted by restart", JobStatus.RUNNING.value),
            )
            for job in interrupted:
                await _clear_handle(conn, task_id=int(job.task_id), kind=job.kind, job_id=int(job.id))

        if interrupted:
            logger.warning("Recovered interrupted jobs", extra={"count": len(interrupted)})
            job_list = ", ".join(f"{job.kind} job {job.id} (task {job.task_id})" for job in interrupted)
            await notify_admins(
                message=f"{len(interrupted)} job(s) were interrupted by a restart and will not be re-sent: {job_list}",
                severity="warning",
                error_kind=ErrorKind.DELIVERY_FAILURE,
            )
        return interrupted


async def list_jobs(*, task_id: str) -> list[Job]:
    """Job history for a task, oldest first."""
    records = await db_client.list_records(
        collection="jobs",
        filter_query=f'task_id = "{db_client.sanitize_param(task_id)}"',
        sort="id ASC",
        per_page=constants.DEFAULT_PER_PAGE_LIMIT,
    )
    return [_to_job(record) for record in records]


async def live_jobs(*, task_id: str) -> list[Job]:
    """Scheduled (not yet fired) jobs for a task."""
    return [job for job in await list_jobs(task_id=task_id) if job.status == JobStatus.SCHEDULED]
