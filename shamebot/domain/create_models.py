"""Pydantic models for creating records in database."""

from pydantic import BaseModel, Field, field_validator, model_validator

from shamebot.core.config import constants
from shamebot.domain.accountability import RequestStatus


def clean_title(v: str) -> str:
    title = v.strip()
    if not title:
        msg = "Title must not be empty"
        raise ValueError(msg)
    if len(title) > constants.MAX_TITLE_LENGTH:
        msg = f"Title must be at most {constants.MAX_TITLE_LENGTH} characters"
        raise ValueError(msg)
    return title


def check_pester_interval(v: int | None) -> int | None:
    if v is not None and v < constants.MIN_PESTER_INTERVAL_SECONDS:
        msg = f"Pester interval must be at least {constants.MIN_PESTER_INTERVAL_SECONDS} seconds"
        raise ValueError(msg)
    return v


def check_due_at(v: int) -> int:
    if v < 0:
        msg = "Due time must be a UNIX timestamp, or 0 for no due date"
        raise ValueError(msg)
    return v


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record."""

    user_id: str = Field(..., description="Owning user (Discord snowflake)")
    title: str = Field(..., description="Task title")
    list_id: str | None = Field(default=None, description="Owning list ID")
    guild_id: str | None = Field(default=None, description="Originating guild")
    content: str | None = Field(default=None, description="Free-text task body")
    due_at: int = Field(default=0, description="Due time as UNIX seconds; 0 means no due date")
    pester_interval: int | None = Field(default=None, description="Seconds between pesters")
    pester_limit: int | None = Field(default=None, ge=1, description="Maximum number of pesters")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is 1-80 characters after trimming."""
        return clean_title(v)

    @field_validator("due_at")
    @classmethod
    def validate_due_at(cls, v: int) -> int:
        return check_due_at(v)

    @field_validator("pester_interval")
    @classmethod
    def validate_pester_interval(cls, v: int | None) -> int | None:
        return check_pester_interval(v)


class ProofCreate(BaseModel):
    """Pydantic model for creating a proof record."""

    task_id: str = Field(..., description="Task the proof is for")
    content: str | None = Field(default=None, description="Text evidence")
    image: str | None = Field(default=None, description="Image reference")

    @model_validator(mode="after")
    def validate_has_evidence(self) -> "ProofCreate":
        """Require at least one of content or image."""
        if not (self.content and self.content.strip()) and not (self.image and self.image.strip()):
            msg = "Proof needs text content or an image"
            raise ValueError(msg)
        return self


class AccountabilityRequestCreate(BaseModel):
    """Pydantic model for creating an accountability request record."""

    requesting_user: str = Field(..., description="Task owner asking for a partner")
    requested_user: str = Field(..., description="User asked to be the partner")
    task_id: str = Field(..., description="Task the request applies to")
    status: RequestStatus = Field(default=RequestStatus.PENDING, description="Initial request state")
