"""Proof of completion: submission by the owner, review by the partner."""

import logging

from shamebot.core import db_client, message_templates
from shamebot.core.config import settings
from shamebot.core.errors import ConflictError, GateNotSatisfiedError
from shamebot.core.logging import span
from shamebot.core.task_locks import task_locks
from shamebot.domain.create_models import ProofCreate
from shamebot.domain.proof import Proof
from shamebot.services import accountability_service, notification_service, task_service


logger = logging.getLogger(__name__)


async def get_proof(*, proof_id: str) -> Proof:
    return Proof(**await db_client.get_record(collection="proofs", record_id=proof_id))


async def submit_proof(
    *,
    task_id: str,
    user_id: str,
    content: str | None = None,
    image: str | None = None,
) -> Proof:
    """Submit completion evidence, replacing any earlier proof for the task.

    Raises:
        ValueError: If neither content nor image is given
        RecordNotFoundError: If the task does not exist
        PermissionError: If user_id does not own the task
        ConflictError: If the task is already checked
        GateNotSatisfiedError: If the task has no accepted accountability partner
    """
    with span("proof_service.submit_proof"):
        payload = ProofCreate(task_id=task_id, content=content, image=image)

        async with task_locks.hold(task_id):
            task = await task_service.get_task(task_id=task_id)
            if task.user_id != user_id:
                msg = "Only the task owner can submit proof"
                raise PermissionError(msg)
            if task.checked:
                msg = f"Task {task_id} is already checked"
                raise ConflictError(msg)

            partner = await accountability_service.get_partner(task_id=task_id)
            if partner is None:
                msg = "Proof is only needed once an accountability partner has accepted your request"
                raise GateNotSatisfiedError(msg)

            # Superseded proofs are discarded; the task never points at a deleted proof
            row_id = int(task.id)
            async with db_client.transaction() as conn:
                await conn.execute("DELETE FROM proofs WHERE task_id = ?", (row_id,))
                cursor = await conn.execute(
                    "INSERT INTO proofs (task_id, content, image) VALUES (?, ?, ?)",
                    (row_id, payload.content, payload.image),
                )
                proof_row = cursor.lastrowid
                await conn.execute("UPDATE tasks SET proof_id = ? WHERE id = ?", (proof_row, row_id))

            proof = await get_proof(proof_id=str(proof_row))

        notification_service.notify_in_background(
            notification_service.to_user(
                partner,
                message_templates.proof_submitted(
                    user_id=user_id,
                    title=task.title,
                    proof_id=proof.id,
                    url=f"{settings.shamebot_url}/tasks/{task_id}",
                ),
            )
        )
        logger.info("Proof submitted", extra={"task_id": task_id, "proof_id": proof.id})
        return proof


async def review_proof(*, proof_id: str, reviewer: str, approve: bool) -> Proof:
    """Approve or reject a proof as the task's accountability partner.

    Raises:
        RecordNotFoundError: If the proof or its task does not exist
        PermissionError: If the reviewer is not the accepted partner
        ConflictError: If the proof is already approved or was superseded
    """
    with span("proof_service.review_proof"):
        task_id = (await get_proof(proof_id=proof_id)).task_id

        async with task_locks.hold(task_id):
            proof = await get_proof(proof_id=proof_id)
            task = await task_service.get_task(task_id=task_id)

            if await accountability_service.get_partner(task_id=task_id) != reviewer:
                msg = "Only the task's accountability partner can review its proof"
                raise PermissionError(msg)
            if task.proof_id != proof.id:
                msg = "This proof was replaced by a newer one"
                raise ConflictError(msg)
            if proof.approved:
                msg = "This proof is already approved"
                raise ConflictError(msg)

            if approve:
                proof = Proof(
                    **await db_client.update_record(collection="proofs", record_id=proof_id, data={"approved": True})
                )

        notification_service.notify_in_background(
            notification_service.to_user(
                task.user_id,
                message_templates.proof_reviewed(reviewer=reviewer, title=task.title, approved=approve),
            )
        )
        logger.info("Proof reviewed", extra={"task_id": task_id, "proof_id": proof_id, "approved": approve})
        return proof
