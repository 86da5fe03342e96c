"""Object storage backends for source blobs, outputs and artifacts.

Both backends are picklable so the transform pool can ship them to worker
processes; the S3 backend recreates its boto3 client lazily on the other side.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, urljoin

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from imagebatch.core.errors import StorageError


class ObjectStorage(Protocol):
    """Storage contract shared by the fetcher, the pool and the routes."""

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    def read(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def public_url(self, key: str) -> str: ...

    def locate(self, key: str) -> str: ...


class LocalObjectStorage:
    """Stores objects as files below ``root``."""

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url

    def path_for(self, key: str) -> Path:
        root = self.root.resolve()
        candidate = (root / key).resolve()
        if candidate != root and root not in candidate.parents:
            raise StorageError(f"invalid storage key: {key}")
        return candidate

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None:
        try:
            target = self.path_for(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"cannot write {key}: {exc}") from exc

    def read(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def public_url(self, key: str) -> str:
        return urljoin(self.public_base_url.rstrip("/") + "/", quote(key))

    def locate(self, key: str) -> str:
        return str(self.path_for(key))


class S3ObjectStorage:
    """S3-compatible storage (AWS, R2, MinIO)."""

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 storage requires a bucket name")
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.public_base_url = public_base_url
        self._client = client

    def __getstate__(self) -> dict[str, Any]:
        state = dict(self.__dict__)
        state["_client"] = None
        return state

    @property
    def client(self) -> Any:
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                service_name="s3",
                endpoint_url=self.endpoint_url,
                region_name=self.region_name,
                config=BotoConfig(signature_version="s3v4"),
            )
        return self._client

    def write(self, key: str, data: bytes, content_type: str | None = None) -> None:
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            self.client.put_object(**params)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"cannot write s3://{self.bucket}/{key}: {exc}") from exc

    def read(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"cannot read s3://{self.bucket}/{key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"cannot stat s3://{self.bucket}/{key}: {exc}") from exc
        return True

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return urljoin(self.public_base_url.rstrip("/") + "/", quote(key))
        return f"https://{self.bucket}.s3.amazonaws.com/{quote(key)}"

    def locate(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"
