"""Application service layer for job status and item records."""
from __future__ import annotations

import logging

from imagebatch.core.errors import PersistenceError
from imagebatch.core.schema import ItemRecord
from imagebatch.domain import JobState, StatusRecord, utcnow
from imagebatch.infrastructure import InMemoryJobRepository, JobRepository

logger = logging.getLogger(__name__)


class StatusTracker:
    """``processing -> completed | failed`` with an exactly-once terminal write.

    Terminal transitions are compare-and-set against ``processing``: whichever
    terminal write lands first wins and later ones are refused.
    """

    def __init__(self, repository: JobRepository) -> None:
        self._repository = repository

    def open(self, job_id: str) -> StatusRecord:
        return self._repository.create_status(job_id)

    def get(self, job_id: str) -> StatusRecord:
        return self._repository.get_status(job_id)

    def complete(self, job_id: str) -> bool:
        return self._finish(job_id, JobState.COMPLETED)

    def fail(self, job_id: str, message: str) -> bool:
        return self._finish(job_id, JobState.FAILED, error=message or "unknown error")

    def _finish(self, job_id: str, state: JobState, *, error: str | None = None) -> bool:
        applied = self._repository.compare_and_set(
            job_id,
            expected=JobState.PROCESSING,
            state=state,
            completed_at=utcnow(),
            error=error,
        )
        if not applied:
            current = self._repository.get_status(job_id)
            logger.warning(
                "Refused %s transition for job %s; already %s",
                state.value,
                job_id,
                current.state.value,
            )
        return applied


class JobService:
    """Coordinates status and item-record use cases."""

    def __init__(self, repository: JobRepository) -> None:
        self._repository = repository
        self.tracker = StatusTracker(repository)

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------
    def get_status(self, job_id: str) -> StatusRecord:
        return self.tracker.get(job_id)

    # ------------------------------------------------------------------
    # item records
    # ------------------------------------------------------------------
    def save_item(self, record: ItemRecord) -> None:
        try:
            self._repository.save_item(record)
        except Exception as exc:
            raise PersistenceError(f"cannot save {record.product_name!r} for job {record.job_id}: {exc}") from exc

    def list_items(self, job_id: str) -> list[ItemRecord]:
        self.tracker.get(job_id)
        return self._repository.list_items(job_id)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


_repository = InMemoryJobRepository()
_service = JobService(_repository)


def get_job_service() -> JobService:
    """Return the singleton job service for the process."""

    return _service


def reset_job_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
