from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from imagebatch.application import JobService, StatusTracker
from imagebatch.core.errors import JobNotFound, PersistenceError
from imagebatch.core.schema import ItemRecord
from imagebatch.domain import JobState, utcnow
from imagebatch.infrastructure import InMemoryJobRepository


@pytest.fixture()
def tracker():
    return StatusTracker(InMemoryJobRepository())


def test_new_job_starts_processing(tracker):
    record = tracker.open("job-1")
    assert record.state is JobState.PROCESSING
    assert record.completed_at is None
    assert record.error is None
    assert not record.state.terminal


def test_duplicate_open_is_refused(tracker):
    tracker.open("job-1")
    with pytest.raises(ValueError):
        tracker.open("job-1")


def test_complete_sets_timestamp(tracker):
    tracker.open("job-1")
    assert tracker.complete("job-1") is True

    record = tracker.get("job-1")
    assert record.state is JobState.COMPLETED
    assert record.completed_at is not None
    assert record.error is None


def test_fail_records_message(tracker):
    tracker.open("job-1")
    assert tracker.fail("job-1", "Failed to fetch http://x.test/a.jpg: 404") is True

    record = tracker.get("job-1")
    assert record.state is JobState.FAILED
    assert record.error == "Failed to fetch http://x.test/a.jpg: 404"


def test_late_completion_does_not_clobber_failure(tracker):
    tracker.open("job-1")
    tracker.fail("job-1", "boom")
    assert tracker.complete("job-1") is False

    record = tracker.get("job-1")
    assert record.state is JobState.FAILED
    assert record.error == "boom"


def test_late_failure_does_not_clobber_completion(tracker):
    tracker.open("job-1")
    tracker.complete("job-1")
    first = tracker.get("job-1")
    assert tracker.fail("job-1", "late") is False
    assert tracker.get("job-1") == first


def test_unknown_job_raises_not_found(tracker):
    with pytest.raises(JobNotFound):
        tracker.get("missing")
    with pytest.raises(JobNotFound):
        tracker.complete("missing")


def test_returned_records_are_snapshots(tracker):
    tracker.open("job-1")
    snapshot = tracker.get("job-1")
    tracker.complete("job-1")
    assert snapshot.state is JobState.PROCESSING


def test_concurrent_terminal_writes_apply_exactly_once(tracker):
    tracker.open("job-1")
    barrier = threading.Barrier(8)
    results: list[bool] = []
    lock = threading.Lock()

    def finish(index: int) -> None:
        barrier.wait()
        applied = tracker.complete("job-1") if index % 2 else tracker.fail("job-1", f"worker {index}")
        with lock:
            results.append(applied)

    threads = [threading.Thread(target=finish, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert tracker.get("job-1").state.terminal


def test_status_to_dict_shape(tracker):
    tracker.open("job-1")
    tracker.complete("job-1")
    payload = tracker.get("job-1").to_dict()
    assert payload["request_id"] == "job-1"
    assert payload["status"] == "completed"
    assert isinstance(payload["completed_at"], str)


class ExplodingRepository(InMemoryJobRepository):
    def save_item(self, record: ItemRecord) -> None:
        raise ConnectionError("record store unavailable")


def test_save_item_failures_surface_as_persistence_error():
    service = JobService(ExplodingRepository())
    record = ItemRecord(job_id="job-1", product_name="A", processed_at=utcnow())
    with pytest.raises(PersistenceError):
        service.save_item(record)


def test_list_items_requires_known_job():
    service = JobService(InMemoryJobRepository())
    with pytest.raises(JobNotFound):
        service.list_items("missing")
    service.tracker.open("job-1")
    assert service.list_items("job-1") == []
