from shamebot.services import (
    accountability_service,
    dispatcher,
    job_store,
    notification_service,
    proof_service,
    task_service,
)


__all__ = [
    "accountability_service",
    "dispatcher",
    "job_store",
    "notification_service",
    "proof_service",
    "task_service",
]
