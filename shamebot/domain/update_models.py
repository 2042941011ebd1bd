"""Update models for database operations."""

from pydantic import BaseModel, Field, field_validator

from shamebot.domain.create_models import check_due_at, check_pester_interval, clean_title


class TaskUpdate(BaseModel):
    """Partial update for a task; only fields that were set are applied."""

    title: str | None = Field(default=None, description="New title")
    content: str | None = Field(default=None, description="New body")
    due_at: int | None = Field(default=None, description="New due time; 0 clears the due date")
    pester_interval: int | None = Field(default=None, description="New pester interval; None disables pestering")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return None if v is None else clean_title(v)

    @field_validator("due_at")
    @classmethod
    def validate_due_at(cls, v: int | None) -> int | None:
        return None if v is None else check_due_at(v)

    @field_validator("pester_interval")
    @classmethod
    def validate_pester_interval(cls, v: int | None) -> int | None:
        return check_pester_interval(v)

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller explicitly set."""
        return self.model_dump(exclude_unset=True)
