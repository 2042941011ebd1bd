"""Tests for job tracking, retry with backoff and the dispatch schedule."""

from unittest.mock import AsyncMock

import pytest

from shamebot.core import scheduler
from shamebot.core.errors import ErrorKind
from shamebot.core.scheduler_tracker import JobTracker, job_tracker, retry_job_with_backoff
from shamebot.services import dispatcher
from shamebot.services.dispatcher import DispatchReport


@pytest.mark.unit
class TestJobTracker:
    """In-memory job health bookkeeping."""

    async def test_success_resets_consecutive_failures(self):
        tracker = JobTracker()
        await tracker.record_job_failure("dispatch", "boom")
        await tracker.record_job_failure("dispatch", "boom")

        await tracker.record_job_success("dispatch")

        status = await tracker.get_job_status("dispatch")
        assert status["consecutive_failures"] == 0
        assert status["failure_count"] == 2
        assert status["success_count"] == 1
        assert status["currently_running"] is False

    async def test_failures_are_counted(self):
        tracker = JobTracker()

        assert await tracker.record_job_failure("dispatch", "boom") == 1
        assert await tracker.record_job_failure("dispatch", "boom again") == 2

        status = await tracker.get_job_status("dispatch")
        assert status["last_error"] == "boom again"

    async def test_running_job_is_reported(self):
        tracker = JobTracker()

        await tracker.record_job_start("dispatch")

        assert (await tracker.get_job_status("dispatch"))["currently_running"] is True
        assert tracker.tracked_jobs() == ["dispatch"]

    async def test_unknown_job_has_empty_status(self):
        status = await JobTracker().get_job_status("never_ran")

        assert status["success_count"] == 0
        assert status["last_success"] is None

    async def test_dead_letter_queue(self):
        tracker = JobTracker()

        await tracker.add_to_dead_letter_queue("overdue_delivery", "Missing Access", "overdue job 4 for task 2")

        assert tracker.get_dead_letter_queue() == [
            {"job_name": "overdue_delivery", "error": "Missing Access", "context": "overdue job 4 for task 2"}
        ]
        tracker.reset()
        assert tracker.get_dead_letter_queue() == []


@pytest.mark.unit
class TestRetryJobWithBackoff:
    """Bounded retries with exponential backoff, then escalation."""

    async def test_first_attempt_succeeds(self, no_backoff, admin_alerts):
        job = AsyncMock()

        outcome = await retry_job_with_backoff(job, "dispatch")

        assert outcome.success is True
        assert outcome.attempts == 1
        job.assert_awaited_once()
        no_backoff.assert_not_awaited()
        admin_alerts.assert_not_awaited()

    async def test_retries_with_exponential_delay(self, no_backoff, admin_alerts):
        job = AsyncMock(side_effect=[RuntimeError("flaky"), RuntimeError("flaky"), None])

        outcome = await retry_job_with_backoff(job, "dispatch", max_retries=3, base_delay=2.0)

        assert outcome.success is True
        assert outcome.attempts == 3
        assert [c.args[0] for c in no_backoff.await_args_list] == [1.0, 2.0]
        admin_alerts.assert_not_awaited()

    async def test_exhausted_retries_alert_operators(self, no_backoff, admin_alerts):
        job = AsyncMock(side_effect=RuntimeError("Discord is down"))

        outcome = await retry_job_with_backoff(
            job,
            "pester_delivery",
            max_retries=2,
            error_kind=ErrorKind.DELIVERY_FAILURE,
            context="pester job 3 for task 1",
        )

        assert outcome.success is False
        assert outcome.attempts == 2
        assert outcome.error == "Discord is down"
        admin_alerts.assert_awaited_once()
        kwargs = admin_alerts.call_args.kwargs
        assert kwargs["error_kind"] == ErrorKind.DELIVERY_FAILURE
        assert "pester job 3 for task 1" in kwargs["message"]
        assert job_tracker.get_dead_letter_queue() == []

    async def test_dead_letter_after_threshold(self, no_backoff, admin_alerts):
        job = AsyncMock(side_effect=RuntimeError("boom"))

        for _ in range(2):
            await retry_job_with_backoff(job, "dispatch", max_retries=1, dead_letter_threshold=2)

        dead_letters = job_tracker.get_dead_letter_queue()
        assert len(dead_letters) == 1
        assert dead_letters[0]["context"] == "Failed 2 consecutive times"


@pytest.mark.unit
class TestDispatchSchedule:
    """The APScheduler job that drives the dispatcher."""

    async def test_tracked_cycle_records_success(self, monkeypatch, admin_alerts):
        dispatch = AsyncMock(return_value=DispatchReport(fired=2, delivered=2))
        monkeypatch.setattr(dispatcher, "dispatch_due_jobs", dispatch)

        await scheduler._tracked_dispatch_cycle()

        dispatch.assert_awaited_once()
        status = await job_tracker.get_job_status(scheduler.DISPATCH_JOB_NAME)
        assert status["success_count"] == 1

    async def test_failed_cycle_is_tracked_not_raised(self, monkeypatch, admin_alerts):
        monkeypatch.setattr(dispatcher, "dispatch_due_jobs", AsyncMock(side_effect=RuntimeError("db locked")))

        await scheduler._tracked_dispatch_cycle()

        status = await job_tracker.get_job_status(scheduler.DISPATCH_JOB_NAME)
        assert status["consecutive_failures"] == 1
        admin_alerts.assert_awaited_once()

    async def test_start_and_stop(self):
        scheduler.start_scheduler()
        try:
            job = scheduler.scheduler.get_job(scheduler.DISPATCH_JOB_NAME)
            assert job is not None
            assert job.max_instances == 1
        finally:
            scheduler.stop_scheduler()

        assert scheduler.scheduler.running is False
