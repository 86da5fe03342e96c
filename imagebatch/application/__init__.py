"""Application services."""

from .jobs import JobService, StatusTracker, get_job_service, reset_job_state

__all__ = [
    "JobService",
    "StatusTracker",
    "get_job_service",
    "reset_job_state",
]
