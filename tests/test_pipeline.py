from __future__ import annotations

import asyncio
import io
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
import pytest
from PIL import Image

sys.path.append(str(Path(__file__).resolve().parents[1]))

from imagebatch.application import JobService
from imagebatch.core.csvio import parse_artifact
from imagebatch.core.errors import FormatError, PoolFault
from imagebatch.core.schema import ItemRecord
from imagebatch.core.storage import artifact_key
from imagebatch.domain import JobState
from imagebatch.infrastructure import CallbackNotifier, InMemoryJobRepository, LocalObjectStorage, SourceFetcher
from imagebatch.workers.pipeline import PipelineRequest, PipelineWorker
from imagebatch.workers.pool import TransformPool

BASE_URL = "http://files.test"
HOOK = "http://hook.test/done"


def _jpeg() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (20, 20), (10, 200, 10)).save(buf, format="JPEG")
    return buf.getvalue()


def _table(*rows: tuple[str, str]) -> bytes:
    lines = ["Product Name,Input Image Urls"]
    lines.extend(f'{name},"{urls}"' for name, urls in rows)
    return ("\n".join(lines) + "\n").encode("utf-8")


class Web:
    def __init__(self, *, hook_status: int = 200) -> None:
        self.hook_status = hook_status
        self.callbacks: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.callbacks.append(request)
            return httpx.Response(self.hook_status)
        if "missing" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, content=_jpeg())


class FlakyRepository(InMemoryJobRepository):
    """Record store that refuses writes for one product name."""

    def __init__(self, broken_name: str) -> None:
        super().__init__()
        self.broken_name = broken_name

    def save_item(self, record: ItemRecord) -> None:
        if record.product_name == self.broken_name:
            raise ConnectionError("record store hiccup")
        super().save_item(record)


class CrashingPool:
    async def dispatch(self, source_keys):
        raise PoolFault("transform pool crashed while processing the batch")


def _worker(tmp_path, web: Web, *, repository=None, pool=None):
    storage = LocalObjectStorage(tmp_path / "storage", BASE_URL)
    client = httpx.AsyncClient(transport=httpx.MockTransport(web))
    service = JobService(repository or InMemoryJobRepository())
    pool = pool or TransformPool(storage, max_workers=2, executor_factory=lambda n: ThreadPoolExecutor(max_workers=n))
    worker = PipelineWorker(
        service=service,
        storage=storage,
        fetcher=SourceFetcher(storage, http_client=client),
        pool=pool,
        notifier=CallbackNotifier(http_client=client),
    )
    return worker, service, storage


def test_submit_rejects_bad_table_before_creating_a_job(tmp_path):
    repository = InMemoryJobRepository()
    worker, _, _ = _worker(tmp_path, Web(), repository=repository)
    with pytest.raises(FormatError):
        worker.submit(PipelineRequest(table=b"Product Name\nA\n", callback_url=HOOK))
    assert repository._statuses == {}


def test_submit_opens_processing_status(tmp_path):
    worker, service, _ = _worker(tmp_path, Web())
    job = worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg")), callback_url=HOOK))

    assert len(job.job_id) == 32
    assert [item.name for item in job.items] == ["A"]
    assert service.get_status(job.job_id).state is JobState.PROCESSING


def test_each_submission_gets_its_own_id(tmp_path):
    worker, _, _ = _worker(tmp_path, Web())
    table = _table(("A", "http://x.test/a.jpg"))
    first = worker.submit(PipelineRequest(table=table))
    second = worker.submit(PipelineRequest(table=table))
    assert first.job_id != second.job_id


def test_persistence_failure_for_one_item_is_not_fatal(tmp_path):
    web = Web()
    worker, service, storage = _worker(tmp_path, web, repository=FlakyRepository("B"))
    job = worker.submit(
        PipelineRequest(
            table=_table(("A", "http://x.test/a.jpg"), ("B", "http://x.test/b.jpg"), ("C", "http://x.test/c.jpg")),
            callback_url=HOOK,
        )
    )

    status = asyncio.run(worker.run(job))

    assert status.state is JobState.COMPLETED
    assert [record.product_name for record in service.list_items(job.job_id)] == ["A", "C"]
    rows = parse_artifact(storage.read(artifact_key(job.job_id)))
    assert [row["name"] for row in rows] == ["A", "B", "C"]
    assert all(len(row["outputs"]) == 1 for row in rows)
    assert len(web.callbacks) == 1


def test_persisted_records_pair_sources_with_locations(tmp_path):
    worker, service, storage = _worker(tmp_path, Web())
    job = worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg,http://x.test/z.jpg")), callback_url=HOOK))
    asyncio.run(worker.run(job))

    (record,) = service.list_items(job.job_id)
    assert [image.url for image in record.input_images] == ["http://x.test/a.jpg", "http://x.test/z.jpg"]
    assert record.input_images[0].storage_path == storage.locate(f"jobs/{job.job_id}/input/a.jpg")
    assert [image.url for image in record.output_images] == [
        f"{BASE_URL}/jobs/{job.job_id}/output/a.jpg",
        f"{BASE_URL}/jobs/{job.job_id}/output/z.jpg",
    ]
    assert record.output_images[1].storage_path == storage.locate(f"jobs/{job.job_id}/output/z.jpg")


def test_pool_fault_fails_the_job_and_notifies_error(tmp_path):
    web = Web()
    worker, service, storage = _worker(tmp_path, web, pool=CrashingPool())
    job = worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg")), callback_url=HOOK))

    status = asyncio.run(worker.run(job))

    assert status.state is JobState.FAILED
    assert status.error == "transform pool crashed while processing the batch"
    assert not storage.exists(artifact_key(job.job_id))
    assert service.list_items(job.job_id) == []
    body = web.callbacks[0].content
    assert b"transform pool crashed" in body
    assert b"filename=" not in body


def test_fetch_failure_fails_the_job(tmp_path):
    web = Web()
    worker, service, storage = _worker(tmp_path, web)
    job = worker.submit(
        PipelineRequest(table=_table(("A", "http://x.test/a.jpg"), ("B", "http://x.test/missing.jpg")), callback_url=HOOK)
    )

    status = asyncio.run(worker.run(job))

    assert status.state is JobState.FAILED
    assert "http://x.test/missing.jpg" in status.error
    assert not storage.exists(artifact_key(job.job_id))


def test_callback_failure_does_not_change_status(tmp_path):
    web = Web(hook_status=503)
    worker, service, _ = _worker(tmp_path, web)
    job = worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg")), callback_url=HOOK))

    status = asyncio.run(worker.run(job))

    assert status.state is JobState.COMPLETED
    assert service.get_status(job.job_id).state is JobState.COMPLETED
    assert len(web.callbacks) == 1


def test_rerunning_a_finished_job_keeps_first_terminal_state(tmp_path):
    web = Web()
    worker, service, _ = _worker(tmp_path, web)
    job = worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg")), callback_url=HOOK))
    service.tracker.fail(job.job_id, "cancelled by operator")

    status = asyncio.run(worker.run(job))

    assert status.state is JobState.FAILED
    assert status.error == "cancelled by operator"
    body = web.callbacks[0].content
    assert b"cancelled by operator" in body
    assert b"filename=" not in body


def test_concurrent_jobs_share_the_pool_independently(tmp_path):
    web = Web()
    worker, service, storage = _worker(tmp_path, web)
    jobs = [
        worker.submit(PipelineRequest(table=_table(("A", "http://x.test/a.jpg")), callback_url=HOOK)),
        worker.submit(PipelineRequest(table=_table(("B", "http://x.test/missing.jpg")), callback_url=HOOK)),
        worker.submit(PipelineRequest(table=_table(("C", "http://x.test/c.jpg,http://x.test/d.jpg")), callback_url=HOOK)),
    ]

    async def run_all():
        return await asyncio.gather(*(worker.run(job) for job in jobs))

    statuses = asyncio.run(run_all())

    assert [status.state for status in statuses] == [JobState.COMPLETED, JobState.FAILED, JobState.COMPLETED]
    third = parse_artifact(storage.read(artifact_key(jobs[2].job_id)))
    assert [url.rsplit("/", 1)[-1] for url in third[0]["outputs"]] == ["c.jpg", "d.jpg"]
    assert all(jobs[2].job_id in url for url in third[0]["outputs"])
    assert len(web.callbacks) == 3
