"""Live job registry.

The orchestrator talks to an injected JobStore so the registry can be an
in-process dict (default) or Redis, without touching orchestration logic.
Each job is written only by its own background task; readers get copies.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import redis.asyncio as aioredis

from videogen.config import Settings
from videogen.errors import StorageConfigurationError
from videogen.schemas.video import VideoJob

logger = logging.getLogger(__name__)

KEY_PREFIX = "videogen:"


class JobStore(ABC):
    """Async keyed store of VideoJob records."""

    @abstractmethod
    async def get(self, job_id: str) -> VideoJob | None:
        ...

    @abstractmethod
    async def put(self, job: VideoJob) -> None:
        ...

    @abstractmethod
    async def delete(self, job_id: str) -> None:
        ...

    @abstractmethod
    async def list_by_owner(self, organization_id: str, user_id: str) -> list[VideoJob]:
        ...

    async def close(self) -> None:
        return None


class InMemoryJobStore(JobStore):
    """Dict-backed registry; safe under the single event-loop discipline."""

    def __init__(self) -> None:
        self._jobs: dict[str, VideoJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    async def get(self, job_id: str) -> VideoJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def put(self, job: VideoJob) -> None:
        self._jobs[job.job_id] = job.model_copy(deep=True)

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def list_by_owner(self, organization_id: str, user_id: str) -> list[VideoJob]:
        return [
            job.model_copy(deep=True)
            for job in list(self._jobs.values())
            if job.is_owned_by(organization_id, user_id)
        ]


class RedisJobStore(JobStore):
    """Redis-backed registry: one JSON document per job plus a per-owner id set."""

    def __init__(self, client: aioredis.Redis, *, prefix: str = KEY_PREFIX):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisJobStore":
        return cls(aioredis.from_url(url))

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}job:{job_id}"

    def _owner_key(self, organization_id: str, user_id: str) -> str:
        return f"{self._prefix}owner:{organization_id}:{user_id}"

    async def get(self, job_id: str) -> VideoJob | None:
        raw = await self._client.get(self._job_key(job_id))
        if raw is None:
            return None
        return VideoJob.model_validate_json(raw)

    async def put(self, job: VideoJob) -> None:
        await self._client.set(self._job_key(job.job_id), job.model_dump_json(by_alias=True))
        await self._client.sadd(self._owner_key(job.organization_id, job.user_id), job.job_id)

    async def delete(self, job_id: str) -> None:
        job = await self.get(job_id)
        await self._client.delete(self._job_key(job_id))
        if job:
            await self._client.srem(self._owner_key(job.organization_id, job.user_id), job_id)

    async def list_by_owner(self, organization_id: str, user_id: str) -> list[VideoJob]:
        owner_key = self._owner_key(organization_id, user_id)
        members = await self._client.smembers(owner_key)
        if not members:
            return []
        job_ids = sorted(m.decode() if isinstance(m, bytes) else m for m in members)
        raws = await self._client.mget([self._job_key(j) for j in job_ids])

        jobs = []
        for job_id, raw in zip(job_ids, raws):
            if raw is None:
                # Stale index entry left by an interrupted delete.
                await self._client.srem(owner_key, job_id)
                continue
            jobs.append(VideoJob.model_validate_json(raw))
        return jobs

    async def close(self) -> None:
        await self._client.aclose()


def build_job_store(settings: Settings) -> JobStore:
    kind = settings.JOB_STORE.lower()
    if kind == "memory":
        return InMemoryJobStore()
    if kind == "redis":
        logger.info("Job registry: redis (%s)", settings.REDIS_URL)
        return RedisJobStore.from_url(settings.REDIS_URL)
    raise StorageConfigurationError(f"Unknown JOB_STORE: {settings.JOB_STORE}")
