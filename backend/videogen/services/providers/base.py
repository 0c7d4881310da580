"""Provider adapter strategy interface.

An adapter owns everything provider-specific about one family of video APIs:
the creation call, re-reading remote state, normalizing the provider's status
vocabulary into JobStatus, turning failure payloads into readable errors, and
fetching the finished binaries.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from videogen.errors import DownloadFailed, InvalidRequest, ProviderFailed
from videogen.schemas.video import JobStatus, VideoGenerationRequest

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:[^;]+;base64,")


@dataclass
class ProviderUpdate:
    """One observation of remote job state.

    ``handle`` is whatever the adapter needs to re-read the job (a video id or
    an operation name). ``done`` is True once the provider reached a terminal
    state, successful or not.
    """
    handle: str
    status: JobStatus
    done: bool = False
    progress: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderOutput:
    """A successful terminal result, ready for download."""
    video_id: str
    video_ref: str
    thumbnail_ref: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def normalize_base64(value: str) -> str:
    """Strip a ``data:<mime>;base64,`` prefix if present."""
    return _DATA_URL_PREFIX.sub("", value)


def decode_base64(value: str, *, label: str = "image") -> bytes:
    try:
        return base64.b64decode(normalize_base64(value), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequest(f"Reference {label} is not valid base64") from e


def extension_from_mime(mime: str | None) -> str:
    if not mime:
        return "bin"
    mapping = {
        "image/png": "png",
        "image/jpeg": "jpg",
        "image/webp": "webp",
        "video/mp4": "mp4",
        "video/webm": "webm",
    }
    return mapping.get(mime) or mime.split("/")[-1] or "bin"


def error_text(response: httpx.Response) -> str:
    """Best-effort human-readable body of a failed provider response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    return response.text


def json_object(response: httpx.Response) -> dict[str, Any] | None:
    """Decoded JSON object body, or None when the body is not a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def is_retryable_status(status_code: int) -> bool:
    """Statuses worth another poll: rate limiting and server errors."""
    return status_code == 429 or status_code >= 500


class ProviderAdapter(ABC):
    """Abstract base class for provider families.

    Subclasses implement submit/poll/resolve_output/download_video and may
    override download_thumbnail when the provider renders one.
    """

    provider: str = "unknown"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._own_client = http_client is None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def submit(self, request: VideoGenerationRequest) -> ProviderUpdate:
        """Create the remote job. Raises ProviderRejected on a non-success response."""
        ...

    @abstractmethod
    async def poll(self, update: ProviderUpdate) -> ProviderUpdate:
        """Re-read remote state for a previously returned update."""
        ...

    @abstractmethod
    def resolve_output(self, update: ProviderUpdate) -> ProviderOutput:
        """Inspect a terminal update; raise ProviderFailed/ContentFiltered on failure."""
        ...

    @abstractmethod
    async def download_video(self, output: ProviderOutput) -> bytes:
        ...

    async def download_thumbnail(self, output: ProviderOutput) -> bytes | None:
        """Optional secondary asset; None when the provider has none."""
        return None

    def make_job_id(self, update: ProviderUpdate) -> str:
        return update.handle

    def initial_status(self, update: ProviderUpdate) -> JobStatus:
        """Job status right after creation; never terminal."""
        if update.done:
            return JobStatus.IN_PROGRESS
        return update.status

    def request_metadata(self, request: VideoGenerationRequest) -> dict[str, Any]:
        """Request description embedded in the stored metadata sidecar."""
        return {
            "model": request.model,
            "prompt": request.effective_prompt,
            "size": request.size,
            "seconds": request.seconds,
            "remixOf": request.remix_of,
            "referenceImage": (
                {
                    "mimeType": request.reference_image.mime_type,
                    "hadOriginal": bool(request.reference_image.original_base64),
                }
                if request.reference_image else None
            ),
        }

    def _status_payload(self, resp: httpx.Response, label: str) -> dict[str, Any]:
        """Body of a status re-read.

        Retryable statuses raise ``httpx.HTTPStatusError`` so the poll loop
        tries again; any other error status is a terminal ``ProviderFailed``.
        """
        if resp.status_code >= 400:
            if is_retryable_status(resp.status_code):
                resp.raise_for_status()
            raise ProviderFailed(f"{label} status error: {error_text(resp)}")
        payload = json_object(resp)
        if payload is None:
            raise ProviderFailed(f"{label} status response is not a JSON object")
        return payload

    async def _fetch_bytes(self, url: str, headers: dict[str, str], label: str) -> bytes:
        try:
            resp = await self._client.get(url, headers=headers, follow_redirects=True)
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Failed to download {self.provider} {label}: {e}") from e
        if resp.status_code >= 400:
            raise DownloadFailed(
                f"Failed to download {self.provider} {label}: {resp.status_code} {error_text(resp)}"
            )
        return resp.content

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()
