from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000/api/files"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _default_storage_root() -> Path:
    return Path(__file__).resolve().parents[2] / "storage"


@dataclass(slots=True)
class Settings:
    """Runtime configuration read from the process environment."""

    storage_root: Path = field(default_factory=_default_storage_root)
    storage_backend: str = "local"
    public_base_url: str | None = None
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    default_callback_url: str | None = None
    pool_workers: int = 2
    transform_quality: int = 60
    fetch_concurrency: int = 0
    request_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=list)


def load_settings() -> Settings:
    """Build :class:`Settings` from environment variables."""

    root_env = os.getenv("STORAGE_ROOT")
    storage_root = Path(root_env).expanduser().resolve() if root_env else _default_storage_root()

    backend = (os.getenv("STORAGE_BACKEND") or "local").strip().lower()
    if backend not in {"local", "s3"}:
        raise ValueError("STORAGE_BACKEND must be one of local|s3")

    quality = _int_env("TRANSFORM_QUALITY", 60)
    if not 1 <= quality <= 100:
        raise ValueError("TRANSFORM_QUALITY must be between 1 and 100")

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]

    return Settings(
        storage_root=storage_root,
        storage_backend=backend,
        public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
        s3_bucket=os.getenv("S3_BUCKET") or None,
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        s3_region=os.getenv("S3_REGION") or None,
        default_callback_url=os.getenv("DEFAULT_CALLBACK_URL") or None,
        pool_workers=max(1, _int_env("POOL_WORKERS", 2)),
        transform_quality=quality,
        fetch_concurrency=max(0, _int_env("FETCH_CONCURRENCY", 0)),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS") or 30),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        cors_origins=origins,
    )
