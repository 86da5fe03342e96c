from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, Mapping
from urllib.parse import urlparse

from imagebatch.core.csvio import INPUT_COLUMN, NAME_COLUMN
from imagebatch.core.errors import FormatError

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


@dataclass(frozen=True, slots=True)
class ItemSkeleton:
    name: str
    sources: tuple[str, ...]


def is_valid_image_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return False
    return PurePosixPath(parsed.path).suffix.lower() in ALLOWED_EXTENSIONS


def validate_row(row: Mapping[str, str]) -> ItemSkeleton:
    name = str(row.get(NAME_COLUMN) or "").strip()
    raw_urls = str(row.get(INPUT_COLUMN) or "").strip()
    if not name or not raw_urls:
        raise FormatError()

    urls = [url.strip() for url in raw_urls.split(",")]
    if any(not url or not is_valid_image_url(url) for url in urls):
        raise FormatError()
    return ItemSkeleton(name=name, sources=tuple(urls))


def validate_rows(rows: Iterable[Mapping[str, str]]) -> list[ItemSkeleton]:
    """Validate a whole batch; one bad row rejects every row."""

    items = [validate_row(row) for row in rows]
    if not items:
        raise FormatError("CSV Format error: no rows")
    return items
