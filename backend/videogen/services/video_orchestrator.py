from __future__ import annotations
"""Video job orchestrator — owns the live job registry and drives jobs to completion.

Lifecycle of one job:
1. submit(): validate → provider creation call → register job (queued/in_progress)
2. background task: poll every VIDEO_POLL_INTERVAL until the provider is done
   or VIDEO_MAX_POLL_ATTEMPTS is exhausted
3. download video (+ best-effort thumbnail) → AssetStore.persist
4. job marked completed with its stored result, or failed with a coded error
5. VIDEO_JOB_RETENTION_SECONDS after reaching a terminal state the registry
   entry is dropped (stored blobs are never touched)

Each job has exactly one background task, which is the only writer of that
job's mutable fields; status/list callers only read.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Coroutine

import httpx

from videogen.config import Settings
from videogen.errors import (
    DownloadFailed,
    Forbidden,
    InvalidRequest,
    NotFound,
    PersistenceError,
    PollTimeout,
    ProviderNotConfigured,
    VideoGenerationError,
)
from videogen.schemas.video import (
    CallerIdentity,
    JobError,
    JobStatus,
    VideoGenerationRequest,
    VideoJob,
)
from videogen.services.asset_store import AssetStore
from videogen.services.job_store import JobStore, build_job_store
from videogen.services.providers import ProviderAdapter, ProviderUpdate, build_adapters
from videogen.services.providers.base import decode_base64
from videogen.services.storage import build_blob_storage
from videogen.services.video_registry import VIDEO_REGISTRY, VideoModelRegistry

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5.0
MAX_POLL_ATTEMPTS = 120  # ~10 minutes
JOB_RETENTION_SECONDS = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoJobOrchestrator:
    """Turns validated requests into tracked VideoJobs and runs them in the background."""

    def __init__(
        self,
        *,
        job_store: JobStore,
        asset_store: AssetStore,
        adapters: dict[str, ProviderAdapter],
        registry: VideoModelRegistry = VIDEO_REGISTRY,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        retention_seconds: float = JOB_RETENTION_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.job_store = job_store
        self.asset_store = asset_store
        self.adapters = adapters
        self.registry = registry
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.retention_seconds = retention_seconds
        self._http_client = http_client
        self._tasks: set[asyncio.Task] = set()
        self._cleanup_timers: dict[str, asyncio.TimerHandle] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(self, request: VideoGenerationRequest, caller: CallerIdentity) -> VideoJob:
        """Validate, create the remote job, register it and start driving it.

        Returns immediately with the freshly registered job (queued or
        in_progress). Request-time errors are raised; everything after this
        point is reported through the job's status/error fields.
        """
        cap = self.registry.validate(request)

        prompt = request.effective_prompt
        if not prompt:
            raise InvalidRequest("Prompt is required for video generation")
        if not caller.organization_id or not caller.user_id:
            raise InvalidRequest("organizationId and userId are required")

        cropped_image, original_image = self._decode_references(request)

        adapter = self.adapters.get(cap.provider)
        if adapter is None or not adapter.configured:
            raise ProviderNotConfigured(f"{cap.provider} API key not configured")

        update = await adapter.submit(request)

        now = _utcnow()
        job = VideoJob(
            job_id=adapter.make_job_id(update),
            provider=cap.provider,
            model=request.model,
            prompt=prompt,
            status=adapter.initial_status(update),
            progress=update.progress,
            size=request.size,
            seconds=request.seconds,
            aspect_ratio=request.aspect_ratio,
            negative_prompt=request.negative_prompt,
            has_reference_image=request.reference_image is not None,
            remix_of=request.remix_of,
            organization_id=caller.organization_id,
            user_id=caller.user_id,
            user_email=caller.user_email,
            created_at=now,
            updated_at=now,
            provider_operation_id=update.handle or None,
        )
        await self.job_store.put(job)
        logger.info(
            "Video job %s created (provider=%s, model=%s, status=%s)",
            job.job_id, job.provider, job.model, job.status.value,
        )

        self._spawn(self._drive(job.job_id, request, adapter, update, cropped_image, original_image))
        return job

    async def get_status(self, job_id: str, organization_id: str, user_id: str) -> VideoJob:
        job = await self.job_store.get(job_id)
        if job is None:
            raise NotFound("Video job not found")
        if not job.is_owned_by(organization_id, user_id):
            raise Forbidden("You are not authorized to access this job")
        return job

    async def list_recent(self, organization_id: str, user_id: str) -> list[VideoJob]:
        """Caller's jobs created within the retention window, newest first."""
        now = _utcnow()
        jobs = [
            job for job in await self.job_store.list_by_owner(organization_id, user_id)
            if (now - job.created_at).total_seconds() <= self.retention_seconds
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    async def shutdown(self) -> None:
        """Cancel background work and release clients."""
        for timer in self._cleanup_timers.values():
            timer.cancel()
        self._cleanup_timers.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for adapter in self.adapters.values():
            await adapter.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()
        await self.job_store.close()

    # ------------------------------------------------------------------
    # Background drive loop
    # ------------------------------------------------------------------

    async def _drive(
        self,
        job_id: str,
        request: VideoGenerationRequest,
        adapter: ProviderAdapter,
        update: ProviderUpdate,
        cropped_image: bytes | None,
        original_image: bytes | None,
    ) -> None:
        try:
            final = await self._poll_until_done(job_id, adapter, update)
            output = adapter.resolve_output(final)

            video = await adapter.download_video(output)

            thumbnail = None
            try:
                thumbnail = await adapter.download_thumbnail(output)
            except DownloadFailed as e:
                logger.warning("Thumbnail download failed for job %s: %s", job_id, e)

            job = await self.job_store.get(job_id)
            if job is None:
                logger.warning("Video job %s vanished from the registry before persisting", job_id)
                return

            try:
                result = await self.asset_store.persist(
                    job=job,
                    video=video,
                    video_id=output.video_id,
                    thumbnail=thumbnail,
                    original_image=original_image,
                    cropped_image=cropped_image,
                    image_mime_type=request.reference_image.mime_type if request.reference_image else None,
                    metadata={
                        "request": adapter.request_metadata(request),
                        "response": final.payload,
                    },
                )
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to store generated video: {e}") from e

            await self._update(job_id, status=JobStatus.COMPLETED, progress=100, result=result, error=None)
            logger.info("Video job %s completed: %s", job_id, result.video_url)

        except asyncio.CancelledError:
            raise
        except VideoGenerationError as e:
            logger.warning("Video job %s failed (%s): %s", job_id, e.code, e.message)
            await self._fail(job_id, e.code, e.message)
        except Exception as e:
            logger.exception("Video job %s crashed", job_id)
            await self._fail(job_id, "InternalError", str(e) or type(e).__name__)

    async def _poll_until_done(
        self,
        job_id: str,
        adapter: ProviderAdapter,
        update: ProviderUpdate,
    ) -> ProviderUpdate:
        attempts = 0
        while not update.done:
            if attempts >= self.max_poll_attempts:
                raise PollTimeout(
                    f"Timed out waiting for {adapter.provider} video generation "
                    f"after {attempts} status checks"
                )
            attempts += 1
            await asyncio.sleep(self.poll_interval)

            try:
                update = await adapter.poll(update)
            except httpx.HTTPError as e:
                # The next scheduled poll is the retry.
                logger.warning(
                    "Status check %d/%d for job %s failed: %s",
                    attempts, self.max_poll_attempts, job_id, e,
                )
                continue

            logger.debug(
                "Job %s poll %d: status=%s done=%s progress=%s",
                job_id, attempts, update.status.value, update.done, update.progress,
            )
            status = JobStatus.IN_PROGRESS if update.done else update.status
            changes: dict[str, Any] = {"status": status}
            if update.progress is not None:
                changes["progress"] = update.progress
            await self._update(job_id, **changes)

        return update

    # ------------------------------------------------------------------
    # Registry writes and garbage collection
    # ------------------------------------------------------------------

    async def _update(self, job_id: str, **changes: Any) -> VideoJob | None:
        job = await self.job_store.get(job_id)
        if job is None:
            return None

        new_status = changes.get("status")
        if new_status is not None and new_status != job.status:
            if job.status.is_terminal:
                logger.warning(
                    "Ignoring status change %s → %s for finished job %s",
                    job.status.value, new_status.value, job_id,
                )
                changes.pop("status")
            elif job.status == JobStatus.IN_PROGRESS and new_status == JobStatus.QUEUED:
                changes.pop("status")

        updated = job.model_copy(update={**changes, "updated_at": _utcnow()})
        await self.job_store.put(updated)
        if updated.status != job.status:
            logger.info("Video job %s: %s → %s", job_id, job.status.value, updated.status.value)
        if updated.status.is_terminal:
            self._schedule_cleanup(job_id)
        return updated

    async def _fail(self, job_id: str, code: str, message: str) -> None:
        job = await self.job_store.get(job_id)
        if job is None or job.status.is_terminal:
            return
        await self._update(
            job_id,
            status=JobStatus.FAILED,
            error=JobError(code=code, message=message),
            result=None,
        )

    def _schedule_cleanup(self, job_id: str) -> None:
        prior = self._cleanup_timers.pop(job_id, None)
        if prior is not None:
            prior.cancel()
        loop = asyncio.get_running_loop()
        self._cleanup_timers[job_id] = loop.call_later(self.retention_seconds, self._expire, job_id)

    def _expire(self, job_id: str) -> None:
        self._cleanup_timers.pop(job_id, None)
        self._spawn(self._evict(job_id))

    async def _evict(self, job_id: str) -> None:
        job = await self.job_store.get(job_id)
        if job is None:
            return
        if not job.status.is_terminal:
            logger.warning("Refusing to evict unfinished job %s", job_id)
            return
        await self.job_store.delete(job_id)
        logger.info("Video job %s evicted from registry", job_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_references(request: VideoGenerationRequest) -> tuple[bytes | None, bytes | None]:
        """Return (cropped, original) reference image bytes."""
        ref = request.reference_image
        if ref is None:
            return None, None
        cropped = decode_base64(ref.base64, label="image")
        original = decode_base64(ref.original_base64, label="original image") if ref.original_base64 else None
        return cropped, original

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background video task failed", exc_info=exc)


def build_orchestrator(settings: Settings) -> VideoJobOrchestrator:
    """Wire storage, registry and provider adapters from application settings."""
    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
    asset_store = AssetStore(
        build_blob_storage(settings),
        folder=settings.STORAGE_FOLDER,
        url_prefix=settings.FILE_URL_PREFIX,
    )
    adapters = build_adapters(settings, http_client)
    logger.info("Video providers configured: %s", ", ".join(sorted(adapters)) or "none")
    return VideoJobOrchestrator(
        job_store=build_job_store(settings),
        asset_store=asset_store,
        adapters=adapters,
        poll_interval=settings.VIDEO_POLL_INTERVAL,
        max_poll_attempts=settings.VIDEO_MAX_POLL_ATTEMPTS,
        retention_seconds=settings.VIDEO_JOB_RETENTION_SECONDS,
        http_client=http_client,
    )
