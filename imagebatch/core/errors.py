"""Error taxonomy shared by the intake layer and the job pipeline."""
from __future__ import annotations


class ImageBatchError(Exception):
    """Base class for every error raised by the service."""


class FormatError(ImageBatchError):
    """Raised when an uploaded batch table is malformed.

    Rejects the whole batch synchronously at intake.
    """

    def __init__(self, message: str = "CSV Format error") -> None:
        super().__init__(message)


class FetchError(ImageBatchError):
    """Raised when a source reference cannot be downloaded or stored."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {reference}: {reason}")
        self.reference = reference
        self.reason = reason


class PoolFault(ImageBatchError):
    """Raised when the transform worker pool crashes or cannot run a dispatch."""


class TransformFailure(ImageBatchError):
    """A single image could not be recompressed."""


class UnsupportedFormat(TransformFailure):
    """The decoded image is neither JPEG nor PNG."""


class DecodeError(TransformFailure):
    """The blob is not a readable image."""


class StorageError(ImageBatchError):
    """Raised when the object storage cannot read or write a key."""


class PersistenceError(ImageBatchError):
    """Raised when an item record cannot be written to the record store."""


class NotificationError(ImageBatchError):
    """Raised when a completion callback cannot be delivered."""


class JobNotFound(ImageBatchError):
    """Raised when a status query names an unknown job id."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id
