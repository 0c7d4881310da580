"""Pydantic v2 schemas package."""

from videogen.schemas.video import (
    PROVIDER_GOOGLE,
    PROVIDER_OPENAI,
    ArchivedVideoEntry,
    ArchivePage,
    CallerIdentity,
    DialogHint,
    EnhancePromptRequest,
    JobError,
    JobStatus,
    Pagination,
    ReferenceAsset,
    StoredVideoResult,
    VideoGenerationRequest,
    VideoJob,
)

__all__ = [
    "PROVIDER_GOOGLE",
    "PROVIDER_OPENAI",
    "ArchivedVideoEntry",
    "ArchivePage",
    "CallerIdentity",
    "DialogHint",
    "EnhancePromptRequest",
    "JobError",
    "JobStatus",
    "Pagination",
    "ReferenceAsset",
    "StoredVideoResult",
    "VideoGenerationRequest",
    "VideoJob",
]
