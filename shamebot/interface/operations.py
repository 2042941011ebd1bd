"""Result-typed entry points for the thin API layer.

Each operation runs the matching service call and reports either the
resulting record or a classified failure, so callers never need to catch
engine exceptions themselves.
"""

import logging
from collections.abc import Awaitable
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from shamebot.core.errors import ErrorKind, ErrorResponse, classify_error_with_response
from shamebot.core.logging import log_with_context
from shamebot.domain.update_models import TaskUpdate
from shamebot.services import accountability_service, proof_service, task_service


logger = logging.getLogger(__name__)


class OperationResult(BaseModel):
    """Success with a value, or failure with a classified error."""

    ok: bool = Field(..., description="Whether the operation succeeded")
    value: Any = Field(default=None, description="Resulting record on success")
    error: ErrorResponse | None = Field(default=None, description="Classified error on failure")

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None


async def _run(operation: str, call: Awaitable[Any]) -> OperationResult:
    try:
        value = await call
    except ValidationError as e:
        return _invalid_input(operation, e)
    except Exception as e:
        return _failure(operation, e)
    return OperationResult(ok=True, value=value)


def _invalid_input(operation: str, exception: ValidationError) -> OperationResult:
    # pydantic lists every failing field; the first one is enough for a user
    errors = exception.errors()
    message = errors[0]["msg"].removeprefix("Value error, ") if errors else str(exception)
    return _failure(operation, ValueError(message))


def _failure(operation: str, exception: Exception) -> OperationResult:
    error = classify_error_with_response(exception)
    level = "error" if error.kind == ErrorKind.UNKNOWN else "info"
    log_with_context(
        logger, level, "Operation failed", operation=operation, error_code=error.code, error_message=error.message
    )
    return OperationResult(ok=False, error=error)


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
) -> OperationResult:
    return await _run(
        "create_task",
        task_service.create_task(
            user_id=user_id,
            title=title,
            list_id=list_id,
            guild_id=guild_id,
            content=content,
            due_at=due_at,
            pester_interval=pester_interval,
            pester_limit=pester_limit,
        ),
    )


async def edit_task(*, task_id: str, user_id: str, **changes: Any) -> OperationResult:
    """Edit a task. Only the keyword arguments passed are changed.

    Accepts title, content, due_at and pester_interval.
    """
    try:
        update = TaskUpdate(**changes)
    except ValidationError as e:
        return _invalid_input("edit_task", e)
    return await _run("edit_task", task_service.edit_task(task_id=task_id, update=update, user_id=user_id))


async def check_task(*, task_id: str, user_id: str) -> OperationResult:
    return await _run("check_task", task_service.check_task(task_id=task_id, user_id=user_id))


async def delete_task(*, task_id: str, user_id: str) -> OperationResult:
    return await _run("delete_task", task_service.delete_task(task_id=task_id, user_id=user_id))


async def request_accountability(*, requesting_user: str, requested_user: str, task_id: str) -> OperationResult:
    return await _run(
        "request_accountability",
        accountability_service.request_accountability(
            requesting_user=requesting_user,
            requested_user=requested_user,
            task_id=task_id,
        ),
    )


async def respond_accountability(*, requested_user: str, task_id: str, accept: bool) -> OperationResult:
    return await _run(
        "respond_accountability",
        accountability_service.respond_accountability(requested_user=requested_user, task_id=task_id, accept=accept),
    )


async def submit_proof(
    *,
    task_id: str,
    user_id: str,
    content: str | None = None,
    image: str | None = None,
) -> OperationResult:
    return await _run(
        "submit_proof",
        proof_service.submit_proof(task_id=task_id, user_id=user_id, content=content, image=image),
    )


async def review_proof(*, proof_id: str, reviewer: str, approve: bool) -> OperationResult:
    return await _run(
        "review_proof",
        proof_service.review_proof(proof_id=proof_id, reviewer=reviewer, approve=approve),
    )
