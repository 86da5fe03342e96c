"""Best-effort completion callback delivery."""
from __future__ import annotations

import logging

import httpx

from imagebatch.core.errors import NotificationError

logger = logging.getLogger(__name__)


class CallbackNotifier:
    """Posts the job outcome to a caller-supplied address.

    ``notify`` is a tail call: it logs delivery problems and never raises, so
    a job's terminal state never depends on the receiver.
    """

    def __init__(self, *, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None) -> None:
        self._timeout = timeout
        self._http_client = http_client

    async def _post(self, url: str, files: list[tuple[str, tuple]]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, files=files)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, files=files)

    async def deliver(
        self,
        url: str,
        job_id: str,
        *,
        artifact: bytes | None = None,
        error: str | None = None,
    ) -> None:
        """Send the callback, raising :class:`NotificationError` on failure."""

        # Plain fields go in as nameless file parts so the body is always multipart.
        files: list[tuple[str, tuple]] = [("job_id", (None, job_id))]
        if error is not None:
            files.append(("error", (None, error)))
        if artifact is not None:
            files.append(("output_csv", (f"{job_id}_output.csv", artifact, "text/csv")))

        try:
            response = await self._post(url, files)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"callback to {url} failed: {exc}") from exc

    async def notify(
        self,
        url: str | None,
        job_id: str,
        *,
        artifact: bytes | None = None,
        error: str | None = None,
    ) -> bool:
        if not url:
            logger.warning("No callback address for job %s; skipping notification", job_id)
            return False
        try:
            await self.deliver(url, job_id, artifact=artifact, error=error)
        except NotificationError:
            logger.exception("Failed to notify %s for job %s", url, job_id)
            return False
        logger.info("Notified %s for job %s", url, job_id)
        return True
