"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class JobKind(StrEnum):
    """Kinds of scheduled notification jobs a task can own."""

    PESTER = "pester"
    REMINDER = "reminder"
    OVERDUE = "overdue"


class TaskStatus(StrEnum):
    """Derived display state of a task."""

    OPEN = "open"
    OVERDUE = "overdue"
    CHECKED = "checked"


# Column on the task row that holds the live handle for each job kind
JOB_HANDLE_FIELDS: dict[JobKind, str] = {
    JobKind.PESTER: "pester_job",
    JobKind.REMINDER: "reminder_job",
    JobKind.OVERDUE: "overdue_job",
}


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    list_id: str | None = Field(default=None, description="Owning list ID")
    user_id: str = Field(..., description="Owning user (Discord snowflake)")
    guild_id: str | None = Field(default=None, description="Originating guild (Discord snowflake)")
    title: str = Field(..., description="Task title")
    content: str | None = Field(default=None, description="Free-text task body")
    checked: bool = Field(default=False, description="Whether the task is completed")
    overdue: bool = Field(default=False, description="Set when the overdue job fired on an unchecked task")
    reminded: bool = Field(default=False, description="Set when the reminder for the current due time has fired")
    pester: int = Field(default=0, description="Number of pester reminders that have fired")
    pester_interval: int | None = Field(default=None, description="Seconds between pesters; None disables pestering")
    pester_limit: int | None = Field(default=None, description="Maximum pesters; None uses the configured default")
    due_at: int = Field(default=0, description="Due time as UNIX seconds; 0 means no due date")
    proof_id: str | None = Field(default=None, description="Current proof of completion")
    pester_job: str | None = Field(default=None, description="Live pester job handle")
    overdue_job: str | None = Field(default=None, description="Live overdue job handle")
    reminder_job: str | None = Field(default=None, description="Live reminder job handle")

    @property
    def has_due_date(self) -> bool:
        return self.due_at > 0

    def job_handle(self, kind: JobKind) -> str | None:
        """Return the live job handle stored for a job kind."""
        return getattr(self, JOB_HANDLE_FIELDS[kind])
