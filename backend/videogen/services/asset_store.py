from __future__ import annotations
"""Asset store — writes finished generation artifacts into blob storage.

Layout (per tenant):
    {STORAGE_FOLDER}/{organization_id}/{user_id}/
        {session}_{provider}_{modelSlug}.mp4
        {session}_{provider}_{modelSlug}_reference_original.{ext}
        {session}_{provider}_{modelSlug}_reference_cropped.{ext}
        {session}_{provider}_{modelSlug}_thumbnail.webp
        {session}_{provider}_{modelSlug}_metadata.json   (written last)

The metadata sidecar embeds every other asset URL plus the owning job id, so
it alone is enough to rebuild an archive entry. Writes are not transactional:
a crash before the sidecar leaves an orphan video without a recoverable job id.
"""

import json
import logging
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from videogen.errors import NotFound, PersistenceError, StorageError
from videogen.schemas.video import StoredVideoResult, VideoJob
from videogen.services.providers.base import extension_from_mime
from videogen.services.storage import BlobStorage

logger = logging.getLogger(__name__)

SUFFIX_REFERENCE_ORIGINAL = "_reference_original"
SUFFIX_REFERENCE_CROPPED = "_reference_cropped"
SUFFIX_THUMBNAIL = "_thumbnail"
SUFFIX_METADATA = "_metadata"

_UNSAFE_MODEL_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def new_session_id() -> str:
    """``{epoch-millis}_{random-hex}``, unique and time-sortable."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def model_slug(model: str) -> str:
    return _UNSAFE_MODEL_CHARS.sub("-", model)


class AssetStore:
    """Persists job outputs under a tenant-scoped prefix and builds retrieval URLs."""

    def __init__(
        self,
        storage: BlobStorage,
        *,
        folder: str = "generated-videos",
        url_prefix: str = "/api/videos/files",
    ):
        self.storage = storage
        self.folder = folder.strip("/")
        self.url_prefix = url_prefix.rstrip("/")

    def tenant_prefix(self, organization_id: str, user_id: str) -> str:
        return f"{self.folder}/{organization_id}/{user_id}/"

    def file_url(self, organization_id: str, user_id: str, file_name: str) -> str:
        return (
            f"{self.url_prefix}/{quote(organization_id, safe='')}"
            f"/{quote(user_id, safe='')}/{quote(file_name, safe='')}"
        )

    async def read(self, organization_id: str, user_id: str, file_name: str) -> bytes:
        """Fetch one stored file by tenant-scoped name."""
        if "/" in file_name or file_name in ("", ".", ".."):
            raise NotFound("File not found")
        key = self.tenant_prefix(organization_id, user_id) + file_name
        try:
            return await self.storage.get(key)
        except FileNotFoundError as e:
            raise NotFound("File not found") from e
        except StorageError as e:
            # Keys that escape the storage root are reported as missing.
            logger.warning("Failed to read %s: %s", key, e)
            raise NotFound("File not found") from e

    async def _write(
        self,
        job: VideoJob,
        file_name: str,
        data: bytes,
        content_type: str,
    ) -> str:
        key = self.tenant_prefix(job.organization_id, job.user_id) + file_name
        try:
            await self.storage.put(key, data, content_type)
        except StorageError as e:
            raise PersistenceError(f"Failed to store {file_name}: {e}") from e
        logger.debug("Stored %s (%d bytes)", key, len(data))
        return self.file_url(job.organization_id, job.user_id, file_name)

    async def persist(
        self,
        *,
        job: VideoJob,
        video: bytes,
        video_id: str,
        thumbnail: bytes | None = None,
        original_image: bytes | None = None,
        cropped_image: bytes | None = None,
        image_mime_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StoredVideoResult:
        """Write every supplied asset, then the metadata sidecar.

        Raises PersistenceError if any write fails.
        """
        session_id = new_session_id()
        base_name = f"{session_id}_{job.provider}_{model_slug(job.model)}"
        image_ext = extension_from_mime(image_mime_type)
        image_type = image_mime_type or "image/png"

        original_url = None
        if original_image:
            original_url = await self._write(
                job, f"{base_name}{SUFFIX_REFERENCE_ORIGINAL}.{image_ext}", original_image, image_type,
            )

        cropped_url = None
        if cropped_image:
            cropped_url = await self._write(
                job, f"{base_name}{SUFFIX_REFERENCE_CROPPED}.{image_ext}", cropped_image, image_type,
            )

        video_file = f"{base_name}.mp4"
        video_url = await self._write(job, video_file, video, "video/mp4")

        thumbnail_url = None
        if thumbnail:
            thumbnail_url = await self._write(
                job, f"{base_name}{SUFFIX_THUMBNAIL}.webp", thumbnail, "image/webp",
            )

        created_at = datetime.now(timezone.utc)
        payload = {
            **(metadata or {}),
            "provider": job.provider,
            "model": job.model,
            "prompt": job.prompt,
            "videoId": video_id,
            "jobId": job.job_id,
            "sessionId": session_id,
            "remixOf": job.remix_of,
            "createdAt": created_at.isoformat(),
            "organizationId": job.organization_id,
            "userId": job.user_id,
            "userEmail": job.user_email,
            "assets": {
                "video": video_url,
                "thumbnail": thumbnail_url,
                "originalReferenceImage": original_url,
                "croppedReferenceImage": cropped_url,
            },
        }
        metadata_url = await self._write(
            job,
            f"{base_name}{SUFFIX_METADATA}.json",
            json.dumps(payload, indent=2, default=str).encode("utf-8"),
            "application/json",
        )

        logger.info("Persisted session %s for job %s", session_id, job.job_id)

        return StoredVideoResult(
            session_id=session_id,
            prompt=job.prompt,
            model=job.model,
            provider=job.provider,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            original_reference_image_url=original_url,
            cropped_reference_image_url=cropped_url,
            metadata_url=metadata_url,
            file_name=video_file,
            video_id=video_id,
            remix_of=job.remix_of,
            created_at=created_at,
            job_id=job.job_id,
        )
