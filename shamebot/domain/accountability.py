"""Accountability request domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class RequestStatus(StrEnum):
    """State of an accountability request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


ACTIVE_REQUEST_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.ACCEPTED})


class AccountabilityRequest(BaseModel):
    """A request for a user to act as accountability partner on a task."""

    id: str = Field(..., description="Unique request ID from database")
    requesting_user: str = Field(..., description="Task owner asking for a partner")
    requested_user: str = Field(..., description="User asked to be the partner")
    task_id: str = Field(..., description="Task the request applies to")
    status: RequestStatus = Field(default=RequestStatus.PENDING, description="Request state")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REQUEST_STATUSES
