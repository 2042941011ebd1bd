"""Tests for the durable job store and its generation tokens."""

import asyncio

import pytest

from shamebot.core import db_client
from shamebot.core.db_client import RecordNotFoundError
from shamebot.domain.job import JobStatus
from shamebot.domain.task import JobKind
from shamebot.services import job_store


NOW = 1_700_000_000


async def _new_task(title: str = "Laundry") -> str:
    record = await db_client.create_record(collection="tasks", data={"user_id": "111", "title": title})
    return record["id"]


async def _task_record(task_id: str) -> dict:
    return await db_client.get_record(collection="tasks", record_id=task_id)


@pytest.mark.unit
class TestSchedule:
    """Scheduling stores the job and its handle on the task."""

    async def test_schedule_sets_handle_and_generation(self, db):
        task_id = await _new_task()

        job = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW + 60)

        assert job.status == JobStatus.SCHEDULED
        assert job.generation == 1
        assert (await _task_record(task_id))["pester_job"] == job.id
        assert await job_store.current_generation(task_id=task_id, kind=JobKind.PESTER) == 1
        assert await job_store.is_current(job)

    async def test_rescheduling_supersedes_previous_job(self, db):
        task_id = await _new_task()
        first = await job_store.schedule(task_id=task_id, kind=JobKind.OVERDUE, fire_at=NOW + 60)

        second = await job_store.schedule(task_id=task_id, kind=JobKind.OVERDUE, fire_at=NOW + 120)

        assert (await job_store.get_job(job_id=first.id)).status == JobStatus.CANCELLED
        assert not await job_store.is_current(first)
        assert await job_store.claim(job_id=first.id) is False
        assert [job.id for job in await job_store.live_jobs(task_id=task_id)] == [second.id]
        assert (await _task_record(task_id))["overdue_job"] == second.id

    async def test_kinds_are_independent(self, db):
        task_id = await _new_task()

        pester = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW + 60)
        reminder = await job_store.schedule(task_id=task_id, kind=JobKind.REMINDER, fire_at=NOW + 30)

        live = await job_store.live_jobs(task_id=task_id)
        assert {job.id for job in live} == {pester.id, reminder.id}

    async def test_concurrent_schedules_leave_one_live_job(self, db):
        task_id = await _new_task()

        await asyncio.gather(
            *(job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW + i) for i in range(5))
        )

        live = await job_store.live_jobs(task_id=task_id)
        assert len(live) == 1
        assert (await _task_record(task_id))["pester_job"] == live[0].id
        assert await job_store.is_current(live[0])

    async def test_schedule_for_missing_task_raises(self, db):
        with pytest.raises(RecordNotFoundError):
            await job_store.schedule(task_id="999", kind=JobKind.PESTER, fire_at=NOW)


@pytest.mark.unit
class TestCancel:
    """Cancellation is idempotent and invalidates the generation."""

    async def test_cancel_is_idempotent(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.REMINDER, fire_at=NOW)

        assert await job_store.cancel(job_id=job.id) is True
        assert await job_store.cancel(job_id=job.id) is False
        assert await job_store.cancel(job_id="999") is False
        assert await job_store.cancel(job_id="not-a-handle") is False

        assert (await _task_record(task_id))["reminder_job"] is None
        assert await job_store.current_generation(task_id=task_id, kind=JobKind.REMINDER) == 2
        assert await job_store.live_jobs(task_id=task_id) == []

    async def test_cancelled_job_cannot_be_claimed(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.REMINDER, fire_at=NOW)

        await job_store.cancel(job_id=job.id)

        assert await job_store.claim(job_id=job.id) is False

    async def test_cancel_all_clears_every_handle(self, db):
        task_id = await _new_task()
        for kind in JobKind:
            await job_store.schedule(task_id=task_id, kind=kind, fire_at=NOW)

        assert await job_store.cancel_all(task_id=task_id) == 3
        assert await job_store.cancel_all(task_id=task_id) == 0

        task = await _task_record(task_id)
        assert task["pester_job"] is None
        assert task["reminder_job"] is None
        assert task["overdue_job"] is None
        assert await job_store.due_jobs(now=NOW + 10) == []


@pytest.mark.unit
class TestDueJobsAndClaim:
    """Due jobs are claimed exactly once."""

    async def test_due_jobs_returns_scheduled_jobs_oldest_first(self, db):
        task_id = await _new_task()
        pester = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW - 10)
        reminder = await job_store.schedule(task_id=task_id, kind=JobKind.REMINDER, fire_at=NOW - 20)
        await job_store.schedule(task_id=task_id, kind=JobKind.OVERDUE, fire_at=NOW + 100)

        due = await job_store.due_jobs(now=NOW)

        assert [job.id for job in due] == [reminder.id, pester.id]

    async def test_claim_is_compare_and_set(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW)

        results = await asyncio.gather(*(job_store.claim(job_id=job.id) for _ in range(3)))

        assert sorted(results) == [False, False, True]
        assert (await job_store.get_job(job_id=job.id)).status == JobStatus.RUNNING
        assert await job_store.due_jobs(now=NOW) == []

    async def test_mark_delivered_clears_handle(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW)
        await job_store.claim(job_id=job.id)

        assert await job_store.mark_delivered(job_id=job.id, attempts=1) is True
        assert await job_store.mark_delivered(job_id=job.id, attempts=1) is False

        delivered = await job_store.get_job(job_id=job.id)
        assert delivered.status == JobStatus.DELIVERED
        assert delivered.attempts == 1
        assert (await _task_record(task_id))["pester_job"] is None

    async def test_mark_failed_records_error(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.OVERDUE, fire_at=NOW)
        await job_store.claim(job_id=job.id)

        await job_store.mark_failed(job_id=job.id, error="Client error: Missing Access", attempts=3)

        failed = await job_store.get_job(job_id=job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.attempts == 3
        assert failed.last_error == "Client error: Missing Access"

    async def test_mark_stale_only_applies_to_scheduled_jobs(self, db):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.OVERDUE, fire_at=NOW)
        await job_store.claim(job_id=job.id)

        assert await job_store.mark_stale(job_id=job.id) is False
        assert (await job_store.get_job(job_id=job.id)).status == JobStatus.RUNNING

    async def test_finishing_an_old_job_keeps_the_new_handle(self, db):
        task_id = await _new_task()
        old = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW)
        await job_store.claim(job_id=old.id)
        new = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW + 600)

        await job_store.mark_delivered(job_id=old.id)

        assert (await _task_record(task_id))["pester_job"] == new.id


@pytest.mark.unit
class TestRecovery:
    """Jobs left running by a crash are failed at startup."""

    async def test_recover_interrupted_jobs(self, db, admin_alerts):
        task_id = await _new_task()
        job = await job_store.schedule(task_id=task_id, kind=JobKind.REMINDER, fire_at=NOW)
        await job_store.claim(job_id=job.id)

        recovered = await job_store.recover_interrupted_jobs()

        assert [j.id for j in recovered] == [job.id]
        failed = await job_store.get_job(job_id=job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.last_error == "interrupted by restart"
        assert (await _task_record(task_id))["reminder_job"] is None
        assert await job_store.due_jobs(now=NOW + 10) == []
        admin_alerts.assert_awaited_once()

    async def test_nothing_to_recover(self, db, admin_alerts):
        assert await job_store.recover_interrupted_jobs() == []
        admin_alerts.assert_not_awaited()

    async def test_list_jobs_returns_history(self, db):
        task_id = await _new_task()
        first = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW)
        second = await job_store.schedule(task_id=task_id, kind=JobKind.PESTER, fire_at=NOW + 60)

        history = await job_store.list_jobs(task_id=task_id)

        assert [(job.id, job.status) for job in history] == [
            (first.id, JobStatus.CANCELLED),
            (second.id, JobStatus.SCHEDULED),
        ]
