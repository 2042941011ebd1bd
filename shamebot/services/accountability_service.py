"""Accountability workflow: partner requests and responses."""

import logging

from shamebot.core import db_client, message_templates
from shamebot.core.config import settings
from shamebot.core.db_client import RecordNotFoundError
from shamebot.core.errors import ConflictError
from shamebot.core.logging import span
from shamebot.core.task_locks import task_locks
from shamebot.domain.accountability import AccountabilityRequest, RequestStatus
from shamebot.domain.create_models import AccountabilityRequestCreate
from shamebot.services import notification_service, task_service


logger = logging.getLogger(__name__)


async def _requests_for_task(task_id: str) -> list[AccountabilityRequest]:
    records = await db_client.list_records(
        collection="accountability_requests",
        filter_query=f'task_id = "{db_client.sanitize_param(task_id)}"',
    )
    return [AccountabilityRequest(**record) for record in records]


async def get_request(*, requested_user: str, task_id: str) -> AccountabilityRequest | None:
    record = await db_client.get_first_record(
        collection="accountability_requests",
        filter_query=(
            f'requested_user = "{db_client.sanitize_param(requested_user)}" '
            f'&& task_id = "{db_client.sanitize_param(task_id)}"'
        ),
    )
    return AccountabilityRequest(**record) if record else None


async def get_active_request(*, task_id: str) -> AccountabilityRequest | None:
    """The pending or accepted request for a task, if any."""
    return next((request for request in await _requests_for_task(task_id) if request.is_active), None)


async def get_partner(*, task_id: str) -> str | None:
    """The accepted accountability partner of a task, if any."""
    request = await get_active_request(task_id=task_id)
    if request is not None and request.status == RequestStatus.ACCEPTED:
        return request.requested_user
    return None


async def request_accountability(
    *,
    requesting_user: str,
    requested_user: str,
    task_id: str,
) -> AccountabilityRequest:
    """Ask a user to be the accountability partner for a task.

    A task has at most one active (pending or accepted) request. A previous
    rejected request for the same partner is replaced.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If the requester does not own the task
        ConflictError: If the request is a duplicate, targets the requester, or the task is checked
    """
    with span("accountability_service.request_accountability"):
        async with task_locks.hold(task_id):
            task = await task_service.get_task(task_id=task_id)
            if task.user_id != requesting_user:
                msg = "Only the task owner can ask for an accountability partner"
                raise PermissionError(msg)
            if requesting_user == requested_user:
                msg = "You can't be your own accountability partner"
                raise ConflictError(msg)
            if task.checked:
                msg = f"Task {task_id} is already checked"
                raise ConflictError(msg)

            for existing in await _requests_for_task(task_id):
                if existing.is_active and existing.requested_user == requested_user:
                    msg = f"There is already a {existing.status} request for this partner"
                    raise ConflictError(msg)
                if existing.is_active:
                    msg = "This task already has an accountability partner"
                    raise ConflictError(msg)
                if existing.requested_user == requested_user:
                    await db_client.delete_record(collection="accountability_requests", record_id=existing.id)

            payload = AccountabilityRequestCreate(
                requesting_user=requesting_user,
                requested_user=requested_user,
                task_id=task_id,
            )
            record = await db_client.create_record(collection="accountability_requests", data=payload.model_dump())
            request = AccountabilityRequest(**record)

        notification_service.notify_in_background(
            notification_service.to_user(
                requested_user,
                message_templates.accountability_request(
                    requesting_user=requesting_user,
                    title=task.title,
                    url=f"{settings.shamebot_url}/accountability?task={task_id}",
                ),
            )
        )
        logger.info(
            "Accountability requested",
            extra={"task_id": task_id, "request_id": request.id, "requested_user": requested_user},
        )
        return request


async def respond_accountability(*, requested_user: str, task_id: str, accept: bool) -> AccountabilityRequest:
    """Accept or reject a pending request. Only valid once.

    Raises:
        RecordNotFoundError: If no request exists for this user and task
        ConflictError: If the request was already answered
    """
    with span("accountability_service.respond_accountability"):
        async with task_locks.hold(task_id):
            request = await get_request(requested_user=requested_user, task_id=task_id)
            if request is None:
                msg = f"No accountability request for task {task_id}"
                raise RecordNotFoundError(msg)
            if request.status != RequestStatus.PENDING:
                msg = f"You already {request.status} this request"
                raise ConflictError(msg)

            status = RequestStatus.ACCEPTED if accept else RequestStatus.REJECTED
            record = await db_client.update_record(
                collection="accountability_requests",
                record_id=request.id,
                data={"status": status.value},
            )
            request = AccountabilityRequest(**record)
            task = await task_service.find_task(task_id=task_id)

        if task is not None:
            notification_service.notify_in_background(
                notification_service.to_user(
                    request.requesting_user,
                    message_templates.accountability_response(
                        requested_user=requested_user,
                        title=task.title,
                        accepted=accept,
                    ),
                )
            )
        logger.info("Accountability request answered", extra={"task_id": task_id, "status": status.value})
        return request
