"""Deterministic object keys for job inputs, outputs and artifacts."""
from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

INPUT_ZONE = "input"
OUTPUT_ZONE = "output"


def job_prefix(job_id: str) -> str:
    return f"jobs/{job_id}"


def reference_basename(url: str) -> str:
    """Return the file name a source reference is stored under."""

    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or "source"


def input_key(job_id: str, url: str) -> str:
    # Items sharing a basename within one job land on the same key.
    return f"{job_prefix(job_id)}/{INPUT_ZONE}/{reference_basename(url)}"


def output_key_for(source_key: str) -> str:
    return source_key.replace(f"/{INPUT_ZONE}/", f"/{OUTPUT_ZONE}/", 1)


def artifact_key(job_id: str) -> str:
    return f"{job_prefix(job_id)}/{job_id}_output.csv"
