"""Domain entities for batch compression jobs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class JobState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not JobState.PROCESSING


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Item:
    """One named row of a batch together with its pipeline progress.

    ``stored_keys`` is filled by the source fetcher and ``outcomes`` by the
    result aggregator, both positionally aligned with ``sources``. A ``None``
    outcome marks a reference whose transformation failed.
    """

    name: str
    sources: list[str]
    stored_keys: list[str] = field(default_factory=list)
    outcomes: list[str | None] = field(default_factory=list)

    @property
    def reference_count(self) -> int:
        return len(self.sources)

    @property
    def output_urls(self) -> list[str]:
        return [url for url in self.outcomes if url is not None]


@dataclass(slots=True)
class Job:
    """A batch request; the item list is fixed once the job is created."""

    job_id: str
    items: tuple[Item, ...]
    callback_url: str | None = None


@dataclass(slots=True)
class StatusRecord:
    """Single source of truth for a job's progress."""

    job_id: str
    state: JobState = JobState.PROCESSING
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "request_id": self.job_id,
            "status": self.state.value,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
