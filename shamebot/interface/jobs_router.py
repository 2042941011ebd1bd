"""Job inspection and re-registration endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from shamebot.domain.job import Job
from shamebot.services import job_store, task_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{task_id}")
async def get_task_jobs(task_id: str) -> list[Job]:
    """Job history for a task."""
    if await task_service.find_task(task_id=task_id) is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return await job_store.list_jobs(task_id=task_id)


@router.post("/{task_id}")
async def register_task_jobs(task_id: str) -> list[Job]:
    """Register any jobs a task is missing, keeping the ones already scheduled."""
    try:
        jobs = await task_service.reconcile_jobs(task_id=task_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}") from e

    logger.info("Re-registered task jobs", extra={"task_id": task_id, "jobs": len(jobs)})
    return jobs
