"""Infrastructure layer for job status and item record persistence."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Protocol

from imagebatch.core.errors import JobNotFound
from imagebatch.core.schema import ItemRecord
from imagebatch.domain import JobState, StatusRecord


class JobRepository(Protocol):
    """Persistence contract for status records and per-item records."""

    def create_status(self, job_id: str) -> StatusRecord: ...

    def get_status(self, job_id: str) -> StatusRecord: ...

    def compare_and_set(
        self,
        job_id: str,
        *,
        expected: JobState,
        state: JobState,
        completed_at: datetime | None = None,
        error: str | None = None,
    ) -> bool: ...

    def save_item(self, record: ItemRecord) -> None: ...

    def list_items(self, job_id: str) -> list[ItemRecord]: ...

    def reset(self) -> None: ...


class InMemoryJobRepository:
    """Simple in-memory repository for fast iteration and tests.

    Every mutation happens under one lock, which gives the per-key atomicity
    the status compare-and-set relies on.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._statuses: dict[str, StatusRecord] = {}
        self._items: dict[str, list[ItemRecord]] = {}

    # ------------------------------------------------------------------
    # status records
    # ------------------------------------------------------------------
    def create_status(self, job_id: str) -> StatusRecord:
        with self._lock:
            if job_id in self._statuses:
                raise ValueError(f"status record already exists for {job_id}")
            record = StatusRecord(job_id=job_id)
            self._statuses[job_id] = record
            return replace(record)

    def get_status(self, job_id: str) -> StatusRecord:
        with self._lock:
            record = self._statuses.get(job_id)
            if record is None:
                raise JobNotFound(job_id)
            return replace(record)

    def compare_and_set(
        self,
        job_id: str,
        *,
        expected: JobState,
        state: JobState,
        completed_at: datetime | None = None,
        error: str | None = None,
    ) -> bool:
        with self._lock:
            record = self._statuses.get(job_id)
            if record is None:
                raise JobNotFound(job_id)
            if record.state is not expected:
                return False
            record.state = state
            record.completed_at = completed_at
            record.error = error
            return True

    # ------------------------------------------------------------------
    # item records
    # ------------------------------------------------------------------
    def save_item(self, record: ItemRecord) -> None:
        with self._lock:
            self._items.setdefault(record.job_id, []).append(record.model_copy(deep=True))

    def list_items(self, job_id: str) -> list[ItemRecord]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._items.get(job_id, [])]

    def reset(self) -> None:
        with self._lock:
            self._statuses.clear()
            self._items.clear()
