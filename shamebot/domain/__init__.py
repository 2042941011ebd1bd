"""Domain models and DTOs."""

from shamebot.domain.accountability import AccountabilityRequest, RequestStatus
from shamebot.domain.create_models import AccountabilityRequestCreate, ProofCreate, TaskCreate
from shamebot.domain.guild import Guild
from shamebot.domain.job import Job, JobStatus
from shamebot.domain.proof import Proof
from shamebot.domain.task import JobKind, Task, TaskStatus
from shamebot.domain.update_models import TaskUpdate


__all__ = [
    "AccountabilityRequest",
    "AccountabilityRequestCreate",
    "Guild",
    "Job",
    "JobKind",
    "JobStatus",
    "Proof",
    "ProofCreate",
    "RequestStatus",
    "Task",
    "TaskCreate",
    "TaskStatus",
    "TaskUpdate",
]
