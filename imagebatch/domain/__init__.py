"""Domain layer definitions."""

from .jobs import Item, Job, JobState, StatusRecord, utcnow

__all__ = [
    "Item",
    "Job",
    "JobState",
    "StatusRecord",
    "utcnow",
]
