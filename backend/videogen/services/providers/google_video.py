"""Google Veo video generation provider.

Long-running-operation pattern:
  POST /models/{model}:predictLongRunning → operation (may already be done)
  GET  /{operation.name}                  → re-fetch until done
  GET  generatedSamples[0].video.uri      → download with the API key header

Supports: veo-3.0-generate-001, veo-3.0-fast-generate-001.
"""

from __future__ import annotations

import json
import logging
import math
import secrets
import time
from typing import Any

import httpx

from videogen.errors import ContentFiltered, ProviderFailed, ProviderRejected
from videogen.schemas.video import PROVIDER_GOOGLE, JobStatus, VideoGenerationRequest
from videogen.services.providers.base import (
    ProviderAdapter,
    ProviderOutput,
    ProviderUpdate,
    error_text,
    json_object,
    normalize_base64,
)

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 8
DEFAULT_ASPECT_RATIO = "16:9"
DEFAULT_RESOLUTION = "1280x720"

_PROGRESS_KEYS = ("progressPercent", "progressPercentage", "progress")

VEO_FILTER_HEADING = "Google Veo Content Filter:\n"
VEO_FILTER_DEFAULT = (
    "Content was filtered by Google's safety systems. "
    "Please modify your prompt or reference image."
)


def derive_aspect_ratio(size: str | None, default: str = DEFAULT_ASPECT_RATIO) -> str:
    """Reduce a ``WxH`` size to its aspect ratio, e.g. 1280x720 → 16:9."""
    if not size:
        return default
    try:
        width_raw, height_raw = size.lower().split("x", 1)
        width, height = int(width_raw), int(height_raw)
    except ValueError:
        return default
    if width <= 0 or height <= 0:
        return default
    divisor = math.gcd(width, height)
    return f"{width // divisor}:{height // divisor}"


def extract_progress(metadata: Any) -> int | None:
    """Pull a progress percentage out of the operation's free-form metadata."""
    if not isinstance(metadata, dict):
        return None
    for key in _PROGRESS_KEYS:
        value = metadata.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


class GoogleVideoAdapter(ProviderAdapter):
    """Veo via the Gemini API long-running operations."""

    provider = PROVIDER_GOOGLE

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def _build_body(self, request: VideoGenerationRequest) -> dict[str, Any]:
        instance: dict[str, Any] = {"prompt": request.effective_prompt}

        ref = request.reference_image
        if ref and ref.base64:
            instance["image"] = {
                "bytesBase64Encoded": normalize_base64(ref.base64),
                "mimeType": ref.mime_type or "image/png",
            }

        parameters: dict[str, Any] = {
            "aspectRatio": request.aspect_ratio or derive_aspect_ratio(request.size),
            "durationSeconds": request.seconds or DEFAULT_DURATION_SECONDS,
        }
        if request.negative_prompt:
            parameters["negativePrompt"] = request.negative_prompt

        return {"instances": [instance], "parameters": parameters}

    async def submit(self, request: VideoGenerationRequest) -> ProviderUpdate:
        url = f"{self.base_url}/models/{request.model}:predictLongRunning"
        try:
            resp = await self._client.post(url, json=self._build_body(request), headers=self._headers())
        except httpx.HTTPError as e:
            raise ProviderRejected(f"Google video generation request failed: {e}") from e

        if resp.status_code >= 400:
            raise ProviderRejected(f"Google video generation error: {error_text(resp)}")

        operation = json_object(resp)
        if operation is None:
            raise ProviderRejected("Google video generation returned a non-JSON response")
        if not operation.get("name") and not operation.get("done"):
            raise ProviderRejected("Google response missing operation name")

        logger.info(
            "Veo operation started: %s (model=%s, done=%s)",
            operation.get("name"), request.model, bool(operation.get("done")),
        )
        return self._to_update(operation)

    async def poll(self, update: ProviderUpdate) -> ProviderUpdate:
        resp = await self._client.get(f"{self.base_url}/{update.handle}", headers=self._headers())
        return self._to_update(self._status_payload(resp, "Google operation"))

    def make_job_id(self, update: ProviderUpdate) -> str:
        # Operation names contain slashes; job ids must be URL-safe.
        return f"{PROVIDER_GOOGLE}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    def initial_status(self, update: ProviderUpdate) -> JobStatus:
        return JobStatus.IN_PROGRESS if update.done else JobStatus.QUEUED

    def resolve_output(self, update: ProviderUpdate) -> ProviderOutput:
        operation = update.payload

        error = operation.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else None
            logger.error("Veo operation %s failed: %s", update.handle, json.dumps(error, default=str))
            raise ProviderFailed(message or json.dumps(error, default=str))

        response = operation.get("response") or {}
        result = response.get("generateVideoResponse") or response

        filtered = result.get("raiMediaFilteredCount") or 0
        if filtered > 0:
            reasons = [str(r) for r in result.get("raiMediaFilteredReasons") or []]
            detail = "\n".join(reasons) if reasons else VEO_FILTER_DEFAULT
            logger.warning("Veo operation %s filtered %d asset(s)", update.handle, filtered)
            raise ContentFiltered(f"{VEO_FILTER_HEADING}{detail}", reasons=reasons or [VEO_FILTER_DEFAULT])

        samples = result.get("generatedSamples") or result.get("generatedVideos") or []
        if not samples:
            message = "Google response missing generated video"
            if result.get("error"):
                err = result["error"]
                message = err if isinstance(err, str) else json.dumps(err, default=str)
            elif result.get("message"):
                message = str(result["message"])
            raise ProviderFailed(message)

        video = samples[0].get("video") or {}
        uri = video.get("uri")
        if not uri:
            raise ProviderFailed("Google response missing video URI")

        return ProviderOutput(video_id=uri, video_ref=uri, raw=operation)

    async def download_video(self, output: ProviderOutput) -> bytes:
        # The URI already carries the base URL and ?alt=media; only auth is added.
        return await self._fetch_bytes(output.video_ref, self._headers(), "video")

    def request_metadata(self, request: VideoGenerationRequest) -> dict[str, Any]:
        meta = super().request_metadata(request)
        meta["config"] = {
            "aspectRatio": request.aspect_ratio or derive_aspect_ratio(request.size),
            "selectedResolution": request.size or DEFAULT_RESOLUTION,
            "durationSeconds": request.seconds or DEFAULT_DURATION_SECONDS,
            "negativePrompt": request.negative_prompt,
        }
        return meta

    def _to_update(self, operation: dict[str, Any]) -> ProviderUpdate:
        done = bool(operation.get("done"))
        return ProviderUpdate(
            handle=str(operation.get("name") or ""),
            # Operations expose no queued/running split; any live one is in progress.
            status=JobStatus.IN_PROGRESS,
            done=done,
            progress=extract_progress(operation.get("metadata")),
            payload=operation,
        )
