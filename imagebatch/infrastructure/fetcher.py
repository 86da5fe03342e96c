"""Concurrent download of batch source images into object storage."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Sequence

import httpx

from imagebatch.core.errors import FetchError, StorageError
from imagebatch.core.storage import input_key
from imagebatch.core.transform import CONTENT_TYPES
from imagebatch.domain import Item

from .storage import ObjectStorage

logger = logging.getLogger(__name__)


def _guess_content_type(key: str) -> str | None:
    lowered = key.lower()
    if lowered.endswith((".jpg", ".jpeg")):
        return CONTENT_TYPES["jpeg"]
    if lowered.endswith(".png"):
        return CONTENT_TYPES["png"]
    return None


class SourceFetcher:
    """Downloads every reference of every item and stores the raw bytes.

    All references are fetched concurrently. ``max_concurrency`` caps the
    number of in-flight downloads; ``0`` leaves them unbounded. The first
    failing reference aborts the whole batch with :class:`FetchError`.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        timeout: float = 30.0,
        max_concurrency: int = 0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._storage = storage
        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._http_client = http_client

    @contextlib.asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=5.0), follow_redirects=True) as client:
            yield client

    async def _fetch_one(
        self,
        client: httpx.AsyncClient,
        job_id: str,
        url: str,
        semaphore: asyncio.Semaphore | None,
    ) -> str:
        key = input_key(job_id, url)
        try:
            if semaphore is None:
                response = await client.get(url)
            else:
                async with semaphore:
                    response = await client.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(url, str(exc) or exc.__class__.__name__) from exc

        try:
            await asyncio.to_thread(self._storage.write, key, response.content, _guess_content_type(key))
        except StorageError as exc:
            raise FetchError(url, str(exc)) from exc
        logger.debug("Stored %s as %s (%d bytes)", url, key, len(response.content))
        return key

    async def fetch_items(self, job_id: str, items: Sequence[Item]) -> list[Item]:
        """Fill ``stored_keys`` for every item, preserving reference order."""

        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency > 0 else None
        async with self._client() as client:
            tasks = [
                asyncio.ensure_future(self._fetch_one(client, job_id, url, semaphore))
                for item in items
                for url in item.sources
            ]
            try:
                keys = await asyncio.gather(*tasks)
            except Exception:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        offset = 0
        for item in items:
            item.stored_keys = list(keys[offset : offset + item.reference_count])
            offset += item.reference_count
        logger.info("Fetched %d source image(s) for job %s", len(keys), job_id)
        return list(items)
