from __future__ import annotations
"""Pydantic v2 schemas for video generation jobs, stored results and the archive.

All models serialize with camelCase aliases (``jobId``, ``videoUrl``) and accept
either spelling on input.
"""

import enum
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel

PROVIDER_OPENAI = "openai"
PROVIDER_GOOGLE = "google"

_CAMEL = {
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class JobStatus(str, enum.Enum):
    """Video job lifecycle statuses."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ReferenceAsset(BaseModel):
    """Reference image sent with a request; ``base64`` is the (possibly cropped) frame."""

    base64: str
    mime_type: str | None = None
    filename: str | None = None
    original_base64: str | None = None

    model_config = _CAMEL


class CallerIdentity(BaseModel):
    """Tenant identity, already validated upstream."""

    organization_id: str
    user_id: str
    user_email: str | None = None

    model_config = _CAMEL


class VideoGenerationRequest(BaseModel):
    """Schema for submitting a generation request."""

    prompt: str = ""
    model: str
    size: str | None = None
    seconds: int | None = None
    aspect_ratio: str | None = None
    negative_prompt: str | None = None
    remix_of: str | None = Field(
        default=None,
        validation_alias=AliasChoices("remixOf", "remix_of", "remixVideoProviderId", "remixVideoId"),
        serialization_alias="remixOf",
    )
    remix_prompt: str | None = None
    reference_image: ReferenceAsset | None = None

    model_config = _CAMEL

    @property
    def effective_prompt(self) -> str:
        """Prompt actually sent to the provider: remix prompt wins for remixes."""
        if self.remix_of and self.remix_prompt and self.remix_prompt.strip():
            return self.remix_prompt.strip()
        return (self.prompt or "").strip()


class JobError(BaseModel):
    code: str
    message: str

    model_config = _CAMEL


class StoredVideoResult(BaseModel):
    """Where a completed job's assets ended up."""

    session_id: str
    prompt: str
    model: str
    provider: str
    video_url: str
    thumbnail_url: str | None = None
    original_reference_image_url: str | None = None
    cropped_reference_image_url: str | None = None
    metadata_url: str
    file_name: str
    video_id: str
    remix_of: str | None = None
    created_at: datetime
    job_id: str

    model_config = _CAMEL


class VideoJob(BaseModel):
    """A single in-flight or finished generation job in the live registry."""

    job_id: str
    provider: str
    model: str
    prompt: str
    status: JobStatus
    progress: int | None = None
    size: str | None = None
    seconds: int | None = None
    aspect_ratio: str | None = None
    negative_prompt: str | None = None
    has_reference_image: bool = False
    remix_of: str | None = None
    organization_id: str
    user_id: str
    user_email: str | None = None
    created_at: datetime
    updated_at: datetime
    error: JobError | None = None
    result: StoredVideoResult | None = None
    provider_operation_id: str | None = None

    model_config = _CAMEL

    def is_owned_by(self, organization_id: str, user_id: str) -> bool:
        return self.organization_id == organization_id and self.user_id == user_id


class ArchivedVideoEntry(BaseModel):
    """A session reconstructed from blob listing alone."""

    session_id: str
    video_url: str
    thumbnail_url: str | None = None
    metadata_url: str | None = None
    timestamp: datetime
    provider: str
    model: str
    file_name: str
    job_id: str | None = None

    model_config = _CAMEL


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    model_config = _CAMEL


class ArchivePage(BaseModel):
    videos: list[ArchivedVideoEntry]
    pagination: Pagination

    model_config = _CAMEL


class DialogHint(BaseModel):
    text: str
    tone: str = ""
    emotion: str = ""


class EnhancePromptRequest(BaseModel):
    prompt: str = Field(min_length=1)
    dialog: DialogHint | None = None
