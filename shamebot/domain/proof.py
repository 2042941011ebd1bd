"""Proof of completion domain model."""

from pydantic import BaseModel, Field


class Proof(BaseModel):
    """Completion evidence submitted for a task."""

    id: str = Field(..., description="Unique proof ID from database")
    task_id: str = Field(..., description="Task the proof was submitted for")
    content: str | None = Field(default=None, description="Text evidence")
    image: str | None = Field(default=None, description="Image reference (URL or file name)")
    approved: bool = Field(default=False, description="Set by the accountability partner")
