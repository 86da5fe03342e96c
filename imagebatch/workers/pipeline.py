from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from imagebatch.application import JobService
from imagebatch.core.aggregate import redistribute
from imagebatch.core.csvio import build_artifact, read_batch_table
from imagebatch.core.schema import ImageLocation, ItemRecord
from imagebatch.core.storage import artifact_key, output_key_for
from imagebatch.core.validation import validate_rows
from imagebatch.domain import Item, Job, JobState, StatusRecord, utcnow
from imagebatch.infrastructure import CallbackNotifier, ObjectStorage, SourceFetcher

from .pool import TransformPool

logger = logging.getLogger(__name__)


@dataclass
class PipelineRequest:
    table: bytes
    callback_url: str | None = None


class PipelineWorker:
    """Runs batch jobs from intake to notification.

    ``submit`` validates synchronously and opens the status record; ``run``
    drives the asynchronous part and always ends in exactly one terminal
    state. Only the pool, the storage and the record store are shared between
    jobs.
    """

    def __init__(
        self,
        service: JobService,
        storage: ObjectStorage,
        fetcher: SourceFetcher,
        pool: TransformPool,
        notifier: CallbackNotifier,
    ) -> None:
        self._service = service
        self._storage = storage
        self._fetcher = fetcher
        self._pool = pool
        self._notifier = notifier

    @property
    def storage(self) -> ObjectStorage:
        return self._storage

    def submit(self, payload: PipelineRequest) -> Job:
        """Validate the batch table and register a new job.

        Raises ``FormatError`` before any job id exists when the table is bad.
        """
        skeletons = validate_rows(read_batch_table(payload.table))
        job = Job(
            job_id=uuid.uuid4().hex,
            items=tuple(Item(name=skeleton.name, sources=list(skeleton.sources)) for skeleton in skeletons),
            callback_url=payload.callback_url,
        )
        self._service.tracker.open(job.job_id)
        logger.info("Accepted request %s with %d item(s)", job.job_id, len(job.items))
        return job

    async def run(self, job: Job) -> StatusRecord | None:
        """Process ``job`` to a terminal state, then notify. Never raises."""
        tracker = self._service.tracker
        artifact: bytes | None = None
        try:
            artifact = await self._process(job)
        except Exception as exc:
            logger.exception("Processing failed for request %s", job.job_id)
            artifact = None
            try:
                tracker.fail(job.job_id, str(exc) or exc.__class__.__name__)
            except Exception:
                logger.exception("Cannot record failure for request %s", job.job_id)
        else:
            try:
                tracker.complete(job.job_id)
            except Exception:
                logger.exception("Cannot record completion for request %s", job.job_id)

        try:
            status = tracker.get(job.job_id)
        except Exception:
            logger.exception("Cannot read final status for request %s", job.job_id)
            return None

        # Payload follows the recorded state, not the local outcome.
        if status.state is JobState.COMPLETED:
            await self._notifier.notify(job.callback_url, job.job_id, artifact=artifact)
        else:
            await self._notifier.notify(job.callback_url, job.job_id, error=status.error)
        return status

    async def _process(self, job: Job) -> bytes:
        items = await self._fetcher.fetch_items(job.job_id, job.items)
        source_keys = [key for item in items for key in item.stored_keys]
        outputs = await self._pool.dispatch(source_keys)
        redistribute(items, outputs)

        await asyncio.to_thread(self._persist, job.job_id, items)

        artifact = build_artifact(items)
        await asyncio.to_thread(self._storage.write, artifact_key(job.job_id), artifact, "text/csv")
        logger.info("Processing completed for request %s", job.job_id)
        return artifact

    def _persist(self, job_id: str, items: list[Item]) -> None:
        for item in items:
            try:
                record = self._build_record(job_id, item)
                self._service.save_item(record)
            except Exception:
                logger.exception("Error saving product %s for request %s", item.name, job_id)
            else:
                logger.debug("Saved product %s", item.name)

    def _build_record(self, job_id: str, item: Item) -> ItemRecord:
        inputs = [
            ImageLocation(url=url, storage_path=self._storage.locate(key))
            for url, key in zip(item.sources, item.stored_keys)
        ]
        outputs = [
            ImageLocation(url=url, storage_path=self._storage.locate(output_key_for(key)))
            for url, key in zip(item.outcomes, item.stored_keys)
            if url is not None
        ]
        return ItemRecord(
            job_id=job_id,
            product_name=item.name,
            input_images=inputs,
            output_images=outputs,
            processed_at=utcnow(),
        )


_worker: PipelineWorker | None = None


def configure_pipeline_worker(worker: PipelineWorker | None) -> None:
    """Install the worker used by the HTTP routes."""

    global _worker
    _worker = worker


def get_pipeline_worker() -> PipelineWorker:
    if _worker is None:
        raise RuntimeError("pipeline worker is not configured")
    return _worker
