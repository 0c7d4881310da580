"""Video generation API — submit jobs, poll status, browse the archive."""

from __future__ import annotations

import logging
import mimetypes
from typing import Any

from fastapi import APIRouter, Depends, Query, Response

from videogen.api.deps import (
    get_archive_indexer,
    get_asset_store,
    get_caller,
    get_orchestrator,
    get_prompt_enhancer,
)
from videogen.errors import Forbidden
from videogen.schemas.video import (
    ArchivePage,
    CallerIdentity,
    EnhancePromptRequest,
    VideoGenerationRequest,
    VideoJob,
)
from videogen.services.archive_indexer import ArchiveIndexer
from videogen.services.asset_store import AssetStore
from videogen.services.prompt_enhancer import PromptEnhancer
from videogen.services.video_orchestrator import VideoJobOrchestrator
from videogen.services.video_registry import VIDEO_REGISTRY

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate", response_model=VideoJob, response_model_by_alias=True)
async def generate_video(
    req: VideoGenerationRequest,
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: VideoJobOrchestrator = Depends(get_orchestrator),
):
    """Submit a generation request; returns the job immediately."""
    logger.info(
        "Generate request org=%s user=%s model=%s remix=%s",
        caller.organization_id, caller.user_id, req.model, bool(req.remix_of),
    )
    return await orchestrator.submit(req, caller)


@router.get("/jobs", response_model=list[VideoJob], response_model_by_alias=True)
async def list_jobs(
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: VideoJobOrchestrator = Depends(get_orchestrator),
):
    """Caller's jobs still held in the live registry, newest first."""
    return await orchestrator.list_recent(caller.organization_id, caller.user_id)


@router.get("/jobs/{job_id}", response_model=VideoJob, response_model_by_alias=True)
async def get_job(
    job_id: str,
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: VideoJobOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_status(job_id, caller.organization_id, caller.user_id)


@router.get("/archive", response_model=ArchivePage, response_model_by_alias=True)
async def list_archive(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: CallerIdentity = Depends(get_caller),
    indexer: ArchiveIndexer = Depends(get_archive_indexer),
):
    """Stored video history rebuilt from blob storage."""
    return await indexer.list(caller.organization_id, caller.user_id, page=page, limit=limit)


@router.get("/files/{organization_id}/{user_id}/{file_name}")
async def get_file(
    organization_id: str,
    user_id: str,
    file_name: str,
    caller: CallerIdentity = Depends(get_caller),
    asset_store: AssetStore = Depends(get_asset_store),
) -> Response:
    """Serve one stored asset to its owning tenant."""
    if caller.organization_id != organization_id or caller.user_id != user_id:
        raise Forbidden("You are not authorized to access this file")

    data = await asset_store.read(organization_id, user_id, file_name)
    media_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)


@router.get("/models")
async def list_models() -> dict[str, Any]:
    """Supported video models and the parameters each accepts."""
    return {
        "models": VIDEO_REGISTRY.to_dict_list(),
        "providers": VIDEO_REGISTRY.list_providers(),
        "total": len(VIDEO_REGISTRY.list_models()),
    }


@router.post("/enhance-prompt")
async def enhance_prompt(
    req: EnhancePromptRequest,
    caller: CallerIdentity = Depends(get_caller),
    enhancer: PromptEnhancer = Depends(get_prompt_enhancer),
) -> dict[str, Any]:
    """Expand a short idea into a structured shot description."""
    enhanced = await enhancer.enhance(req.prompt, req.dialog)
    return {"enhancedPrompt": enhanced}
