"""Infrastructure layer exports."""

from .fetcher import SourceFetcher
from .notifier import CallbackNotifier
from .records import InMemoryJobRepository, JobRepository
from .storage import LocalObjectStorage, ObjectStorage, S3ObjectStorage

__all__ = [
    "CallbackNotifier",
    "InMemoryJobRepository",
    "JobRepository",
    "LocalObjectStorage",
    "ObjectStorage",
    "S3ObjectStorage",
    "SourceFetcher",
]
