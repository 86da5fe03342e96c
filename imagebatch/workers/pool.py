"""
Transform worker pool.

The coordinator hands the pool one ordered list of stored source keys per job
and awaits one ordered list back: the public output reference for every blob
that was recompressed, ``None`` for every blob that failed on its own. Blobs
are spread over isolated worker processes, so a worker that dies takes down
the dispatch (``PoolFault``) but never the coordinator.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import BrokenExecutor, Executor, ProcessPoolExecutor
from typing import Callable, Optional, Sequence

from imagebatch.core.errors import PoolFault, StorageError, TransformFailure
from imagebatch.core.storage import output_key_for
from imagebatch.core.transform import DEFAULT_QUALITY, recompress
from imagebatch.infrastructure.storage import ObjectStorage

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[int], Executor]
BlobTask = Callable[[ObjectStorage, str, int], Optional[str]]


def transform_blob(storage: ObjectStorage, source_key: str, quality: int = DEFAULT_QUALITY) -> Optional[str]:
    """Recompress one stored blob; runs inside a pool worker."""
    try:
        data = storage.read(source_key)
        result = recompress(data, quality=quality)
        output_key = output_key_for(source_key)
        storage.write(output_key, result.data, result.content_type)
    except (TransformFailure, StorageError) as exc:
        logger.warning("Error processing image %s: %s", source_key, exc)
        return None
    return storage.public_url(output_key)


def process_executor(max_workers: int) -> Executor:
    return ProcessPoolExecutor(max_workers=max_workers)


class TransformPool:
    """Long-lived pool shared by every job in the process.

    Created once by the application lifespan and injected into the pipeline.
    Dispatches carry everything they need, so concurrent jobs never see each
    other's data. A broken executor is replaced on the next dispatch.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        max_workers: int = 2,
        quality: int = DEFAULT_QUALITY,
        executor_factory: ExecutorFactory = process_executor,
        task: BlobTask = transform_blob,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._storage = storage
        self._max_workers = max_workers
        self._quality = quality
        self._executor_factory = executor_factory
        self._task = task
        self._executor: Executor | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def _acquire_executor(self) -> Executor:
        with self._lock:
            if self._closed:
                raise PoolFault("transform pool is shut down")
            if self._executor is None:
                self._executor = self._executor_factory(self._max_workers)
            return self._executor

    def _discard(self, executor: Executor) -> None:
        with self._lock:
            if self._executor is executor:
                self._executor = None
            else:
                return
        logger.error("Transform pool is broken; replacing its workers")
        executor.shutdown(wait=False, cancel_futures=True)

    async def dispatch(self, source_keys: Sequence[str]) -> list[Optional[str]]:
        """Transform a whole batch and return one entry per key, in order."""
        if not source_keys:
            return []

        loop = asyncio.get_running_loop()
        executor = self._acquire_executor()
        try:
            futures = [
                loop.run_in_executor(executor, self._task, self._storage, key, self._quality)
                for key in source_keys
            ]
        except (BrokenExecutor, RuntimeError) as exc:
            self._discard(executor)
            raise PoolFault(f"transform pool unavailable: {exc}") from exc

        try:
            outputs = await asyncio.gather(*futures)
        except BrokenExecutor as exc:
            self._discard(executor)
            raise PoolFault("transform pool crashed while processing the batch") from exc
        except Exception as exc:
            for future in futures:
                future.cancel()
            raise PoolFault(f"unhandled fault in transform worker: {exc}") from exc

        failed = sum(1 for output in outputs if output is None)
        logger.info("Transformed %d/%d image(s)", len(outputs) - failed, len(outputs))
        return list(outputs)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
            self._closed = True
        if executor is not None:
            executor.shutdown(wait=wait)
