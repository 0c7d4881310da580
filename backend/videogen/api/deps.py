"""Shared FastAPI dependencies: caller identity and app-scoped services."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request

from videogen.schemas.video import CallerIdentity
from videogen.services.archive_indexer import ArchiveIndexer
from videogen.services.asset_store import AssetStore
from videogen.services.prompt_enhancer import PromptEnhancer
from videogen.services.video_orchestrator import VideoJobOrchestrator


async def get_caller(
    x_organization_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> CallerIdentity:
    """Identity is authenticated upstream and forwarded as headers."""
    if not x_organization_id or not x_user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity headers")
    return CallerIdentity(
        organization_id=x_organization_id,
        user_id=x_user_id,
        user_email=x_user_email or None,
    )


def get_orchestrator(request: Request) -> VideoJobOrchestrator:
    return request.app.state.orchestrator


def get_asset_store(request: Request) -> AssetStore:
    return request.app.state.orchestrator.asset_store


def get_archive_indexer(request: Request) -> ArchiveIndexer:
    return request.app.state.archive_indexer


def get_prompt_enhancer(request: Request) -> PromptEnhancer:
    return request.app.state.prompt_enhancer
