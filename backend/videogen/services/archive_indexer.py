"""Archive indexer — rebuilds a tenant's video history from blob listing alone.

No database and no live registry: every call lists the tenant prefix, groups
objects into sessions by filename, and paginates the sessions newest first.
Jobs from earlier process lifetimes show up just like current ones.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime

from videogen.errors import InvalidRequest
from videogen.schemas.video import ArchivedVideoEntry, ArchivePage, Pagination
from videogen.services.asset_store import AssetStore

logger = logging.getLogger(__name__)

KIND_VIDEO = "video"
KIND_METADATA = "metadata"
KIND_THUMBNAIL = "thumbnail"

_SESSION = r"(\d+_[a-f0-9]+)_(openai|google)_(.+?)"
_PATTERNS = (
    (KIND_VIDEO, re.compile(rf"^{_SESSION}\.(mp4|webm)$", re.IGNORECASE)),
    (KIND_METADATA, re.compile(rf"^{_SESSION}_metadata\.json$", re.IGNORECASE)),
    (KIND_THUMBNAIL, re.compile(rf"^{_SESSION}_thumbnail\.(webp|png|jpg)$", re.IGNORECASE)),
)


@dataclass(frozen=True)
class SessionDescriptor:
    session_id: str
    provider: str
    model: str
    kind: str


def parse_session_descriptor(file_name: str) -> SessionDescriptor | None:
    """Parse ``{sessionId}_{provider}_{modelSlug}[_suffix].{ext}``.

    Returns None for names that are not a video, metadata sidecar or thumbnail
    (reference images included).
    """
    for kind, pattern in _PATTERNS:
        match = pattern.match(file_name)
        if match:
            return SessionDescriptor(
                session_id=match.group(1),
                provider=match.group(2).lower(),
                model=match.group(3),
                kind=kind,
            )
    return None


def extract_job_id(content: bytes | str) -> str | None:
    data = json.loads(content)
    job_id = data.get("jobId") if isinstance(data, dict) else None
    if job_id is None or job_id == "":
        return None
    return str(job_id)


@dataclass
class _SessionAccumulator:
    session_id: str
    provider: str
    model: str
    timestamp: datetime
    video_url: str | None = None
    thumbnail_url: str | None = None
    metadata_url: str | None = None
    file_name: str | None = None
    job_id: str | None = None


class ArchiveIndexer:
    """Lists archived sessions for one tenant, newest first."""

    def __init__(self, asset_store: AssetStore):
        self.asset_store = asset_store
        self.storage = asset_store.storage

    async def list(
        self,
        organization_id: str,
        user_id: str,
        page: int = 1,
        limit: int = 20,
    ) -> ArchivePage:
        if page < 1:
            raise InvalidRequest("page must be >= 1")
        if limit < 1:
            raise InvalidRequest("limit must be >= 1")

        prefix = self.asset_store.tenant_prefix(organization_id, user_id)
        objects = await self.storage.list(prefix)

        sessions: dict[str, _SessionAccumulator] = {}
        for obj in objects:
            desc = parse_session_descriptor(obj.name)
            if desc is None:
                continue

            session = sessions.get(desc.session_id)
            if session is None:
                session = _SessionAccumulator(
                    session_id=desc.session_id,
                    provider=desc.provider,
                    model=desc.model,
                    timestamp=obj.last_modified,
                )
                sessions[desc.session_id] = session

            url = self.asset_store.file_url(organization_id, user_id, obj.name)
            if desc.kind == KIND_VIDEO:
                session.file_name = obj.name
                session.video_url = url
            elif desc.kind == KIND_THUMBNAIL:
                session.thumbnail_url = url
            else:
                session.metadata_url = url
                if not session.job_id:
                    session.job_id = await self._read_job_id(obj.key)

        ordered = sorted(
            (s for s in sessions.values() if s.video_url),
            key=lambda s: (s.timestamp, s.session_id),
            reverse=True,
        )

        total = len(ordered)
        start = (page - 1) * limit
        end = start + limit

        videos = [
            ArchivedVideoEntry(
                session_id=s.session_id,
                video_url=s.video_url,
                thumbnail_url=s.thumbnail_url,
                metadata_url=s.metadata_url,
                timestamp=s.timestamp,
                provider=s.provider,
                model=s.model,
                file_name=s.file_name or f"{s.session_id}_{s.provider}_{s.model}.mp4",
                job_id=s.job_id,
            )
            for s in ordered[start:end]
        ]

        return ArchivePage(
            videos=videos,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
                has_more=end < total,
            ),
        )

    async def _read_job_id(self, key: str) -> str | None:
        try:
            return extract_job_id(await self.storage.get(key))
        except Exception:
            # A missing job id never hides the session.
            logger.warning("Failed to read job id from archived metadata %s", key, exc_info=True)
            return None
