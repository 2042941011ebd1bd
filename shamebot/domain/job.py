"""Scheduled job domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from shamebot.domain.task import JobKind


class JobStatus(StrEnum):
    """Lifecycle of a single job firing."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    DELIVERED = "delivered"
    FAILED = "failed"  # delivered-with-error, never re-fired
    CANCELLED = "cancelled"
    STALE = "stale"


class Job(BaseModel):
    """A durable scheduled job owned by the job store."""

    id: str = Field(..., description="Opaque job handle")
    task_id: str = Field(..., description="Owning task ID")
    kind: JobKind = Field(..., description="Which handler runs when the job fires")
    fire_at: int = Field(..., description="Fire time as UNIX seconds")
    generation: int = Field(..., description="Generation token for (task_id, kind) at scheduling time")
    status: JobStatus = Field(default=JobStatus.SCHEDULED, description="Current job status")
    attempts: int = Field(default=0, description="Delivery attempts made for this firing")
    last_error: str | None = Field(default=None, description="Last delivery error, if any")
