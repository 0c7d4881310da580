"""Blob storage backends for generated assets.

Two interchangeable backends behind one async interface:
- LocalBlobStorage: a directory tree under BLOB_STORAGE_PATH
- S3BlobStorage: any S3-compatible bucket through the MinIO client

Both list objects sorted by key so that anything folding over a listing
(the archive indexer) sees the same order regardless of backend.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error

from videogen.config import Settings
from videogen.errors import StorageConfigurationError, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobObject:
    """One listed object. ``name`` is the key relative to the listed prefix."""
    key: str
    name: str
    last_modified: datetime


class BlobStorage(ABC):
    """Abstract async blob backend."""

    backend: str = "unknown"

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return object bytes; raises FileNotFoundError when absent."""
        ...

    @abstractmethod
    async def list(self, prefix: str) -> list[BlobObject]:
        """List objects directly under ``prefix`` (which ends with '/')."""
        ...


class LocalBlobStorage(BlobStorage):
    """Filesystem backend rooted at a single directory."""

    backend = "local"

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._resolve(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def list(self, prefix: str) -> list[BlobObject]:
        folder = self._resolve(prefix)

        def _scan() -> list[BlobObject]:
            if not folder.is_dir():
                return []
            objects = []
            for entry in os.scandir(folder):
                if not entry.is_file():
                    continue
                stats = entry.stat()
                objects.append(BlobObject(
                    key=f"{prefix}{entry.name}",
                    name=entry.name,
                    last_modified=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                ))
            return sorted(objects, key=lambda o: o.key)

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            raise StorageError(f"Failed to list {prefix}: {e}") from e


class S3BlobStorage(BlobStorage):
    """S3-compatible backend wrapping a (blocking) MinIO client."""

    backend = "s3"

    def __init__(self, *, client: Minio, bucket: str):
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                self._bucket,
                key,
                io.BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except S3Error as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        def _read() -> bytes:
            response = self._client.get_object(self._bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

        try:
            return await asyncio.to_thread(_read)
        except S3Error as e:
            if e.code in {"NoSuchKey", "NoSuchObject"}:
                raise FileNotFoundError(key) from e
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def list(self, prefix: str) -> list[BlobObject]:
        def _list() -> list[BlobObject]:
            objects = []
            for obj in self._client.list_objects(self._bucket, prefix=prefix, recursive=False):
                if getattr(obj, "is_dir", False) or not obj.object_name:
                    continue
                name = obj.object_name[len(prefix):]
                if not name or "/" in name:
                    continue
                objects.append(BlobObject(
                    key=obj.object_name,
                    name=name,
                    last_modified=obj.last_modified or datetime.fromtimestamp(0, tz=timezone.utc),
                ))
            return sorted(objects, key=lambda o: o.key)

        try:
            return await asyncio.to_thread(_list)
        except S3Error as e:
            raise StorageError(f"Failed to list {prefix}: {e}") from e


def build_blob_storage(settings: Settings) -> BlobStorage:
    """Instantiate the configured storage backend from application settings."""
    storage_type = settings.STORAGE_TYPE.lower()

    if storage_type == "local":
        logger.info("Blob storage: local (%s)", settings.BLOB_STORAGE_PATH)
        return LocalBlobStorage(settings.BLOB_STORAGE_PATH)

    if storage_type == "s3":
        if not all([settings.S3_ENDPOINT_URL, settings.S3_ACCESS_KEY, settings.S3_SECRET_KEY]):
            raise StorageConfigurationError("S3 environment variables are not fully set")

        parsed = urlparse(settings.S3_ENDPOINT_URL)
        secure = (
            settings.S3_SECURE
            if settings.S3_SECURE is not None
            else parsed.scheme == "https"
        )
        client = Minio(
            parsed.netloc or parsed.path,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
            secure=secure,
            region=settings.S3_REGION,
        )
        logger.info("Blob storage: s3 (%s, bucket=%s)", parsed.netloc, settings.S3_BUCKET_NAME)
        return S3BlobStorage(client=client, bucket=settings.S3_BUCKET_NAME)

    raise StorageConfigurationError(f"Unknown STORAGE_TYPE: {settings.STORAGE_TYPE}")
