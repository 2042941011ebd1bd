"""Tests for the result-typed operations exposed to the bot front end."""

import pytest

from shamebot.core.errors import ErrorCode, ErrorKind
from shamebot.domain.accountability import RequestStatus
from shamebot.domain.task import Task
from shamebot.interface import operations
from shamebot.services import task_service


OWNER = "100000000000000001"
PARTNER = "100000000000000002"


async def _create(**fields) -> Task:
    result = await operations.create_task(user_id=OWNER, title=fields.pop("title", "Water plants"), **fields)
    assert result.ok, result.error
    return result.value


@pytest.mark.unit
class TestSuccess:
    """Successful operations carry the resulting record."""

    async def test_create_task(self, db):
        result = await operations.create_task(user_id=OWNER, title="Water plants")

        assert result.ok is True
        assert result.error is None
        assert result.kind is None
        assert isinstance(result.value, Task)
        assert result.value.title == "Water plants"

    async def test_edit_only_changes_given_fields(self, db):
        task = await _create(content="the ferns too")

        result = await operations.edit_task(task_id=task.id, user_id=OWNER, title="Water all plants")

        assert result.ok is True
        assert result.value.title == "Water all plants"
        assert result.value.content == "the ferns too"

    async def test_full_accountability_flow(self, db):
        task = await _create()

        requested = await operations.request_accountability(
            requesting_user=OWNER, requested_user=PARTNER, task_id=task.id
        )
        assert requested.ok
        accepted = await operations.respond_accountability(requested_user=PARTNER, task_id=task.id, accept=True)
        assert accepted.value.status == RequestStatus.ACCEPTED

        proof = await operations.submit_proof(task_id=task.id, user_id=OWNER, content="soil is damp")
        assert proof.ok
        review = await operations.review_proof(proof_id=proof.value.id, reviewer=PARTNER, approve=True)
        assert review.value.approved is True

        checked = await operations.check_task(task_id=task.id, user_id=OWNER)
        assert checked.ok
        assert checked.value.checked is True

    async def test_delete_task(self, db):
        task = await _create()

        result = await operations.delete_task(task_id=task.id, user_id=OWNER)

        assert result.ok is True
        assert result.value is None
        assert await task_service.find_task(task_id=task.id) is None


@pytest.mark.unit
class TestFailureKinds:
    """Failures are reported as a classified error, never raised."""

    async def test_invalid_title(self, db):
        result = await operations.create_task(user_id=OWNER, title="")

        assert result.ok is False
        assert result.kind == ErrorKind.INVALID_INPUT
        assert result.error.code == ErrorCode.ERR_INVALID_INPUT
        assert result.error.message == "Title must not be empty"

    async def test_invalid_edit(self, db):
        task = await _create()

        result = await operations.edit_task(task_id=task.id, user_id=OWNER, pester_interval=5)

        assert result.kind == ErrorKind.INVALID_INPUT
        assert "at least 60 seconds" in result.error.message

    async def test_empty_proof(self, db):
        task = await _create()

        result = await operations.submit_proof(task_id=task.id, user_id=OWNER)

        assert result.kind == ErrorKind.INVALID_INPUT
        assert result.error.message == "Proof needs text content or an image"

    async def test_missing_task(self, db):
        result = await operations.check_task(task_id="999", user_id=OWNER)

        assert result.kind == ErrorKind.NOT_FOUND
        assert result.error.message == "Record not found in tasks: 999"

    async def test_not_owner(self, db):
        task = await _create()

        result = await operations.edit_task(task_id=task.id, user_id=PARTNER, title="Hijacked")

        assert result.kind == ErrorKind.PERMISSION_DENIED

    async def test_double_respond(self, db):
        task = await _create()
        await operations.request_accountability(requesting_user=OWNER, requested_user=PARTNER, task_id=task.id)
        await operations.respond_accountability(requested_user=PARTNER, task_id=task.id, accept=False)

        result = await operations.respond_accountability(requested_user=PARTNER, task_id=task.id, accept=True)

        assert result.kind == ErrorKind.CONFLICT
        request = await operations.request_accountability(
            requesting_user=OWNER, requested_user=PARTNER, task_id=task.id
        )
        assert request.value.status == RequestStatus.PENDING

    async def test_gate_not_satisfied(self, db):
        task = await _create()
        await operations.request_accountability(requesting_user=OWNER, requested_user=PARTNER, task_id=task.id)
        await operations.respond_accountability(requested_user=PARTNER, task_id=task.id, accept=True)

        result = await operations.check_task(task_id=task.id, user_id=OWNER)

        assert result.kind == ErrorKind.GATE_NOT_SATISFIED
        assert result.error.suggestion.startswith("Submit proof")

    async def test_unexpected_error(self, db, monkeypatch):
        async def broken(**kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(task_service, "check_task", broken)

        result = await operations.check_task(task_id="1", user_id=OWNER)

        assert result.kind == ErrorKind.UNKNOWN
        assert result.error.message == "An unexpected error occurred."
