"""OpenAI Sora video generation provider.

Polling-job API:
  POST /videos (multipart) or POST /videos/{id}/remix → job id + initial status
  GET  /videos/{id}                                    → poll status
  GET  /videos/{id}/content?variant=video|thumbnail    → download assets

Supports: sora-2, sora-2-pro.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from videogen.errors import ContentFiltered, ProviderFailed, ProviderRejected
from videogen.schemas.video import PROVIDER_OPENAI, JobStatus, VideoGenerationRequest
from videogen.services.providers.base import (
    ProviderAdapter,
    ProviderOutput,
    ProviderUpdate,
    decode_base64,
    error_text,
    extension_from_mime,
    json_object,
)

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "queued": JobStatus.QUEUED,
    "in_progress": JobStatus.IN_PROGRESS,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}

SORA_CONTENT_GUIDANCE = (
    "\n\nSora Content Restrictions:\n"
    "• Only content suitable for audiences under 18 is allowed\n"
    "• Copyrighted characters and copyrighted music will be rejected\n"
    "• Real people (including public figures) cannot be generated\n"
    "• Input images with faces of humans are currently rejected"
)


def map_status(status: str | None) -> JobStatus:
    return _STATUS_MAP.get(status or "", JobStatus.QUEUED)


class OpenAIVideoAdapter(ProviderAdapter):
    """Sora via the OpenAI videos API."""

    provider = PROVIDER_OPENAI

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def submit(self, request: VideoGenerationRequest) -> ProviderUpdate:
        prompt = request.effective_prompt
        action = "remix" if request.remix_of else "video generation"

        try:
            if request.remix_of:
                body: dict[str, Any] = {"prompt": prompt}
                if request.size:
                    body["size"] = request.size
                if request.seconds:
                    body["seconds"] = str(request.seconds)
                resp = await self._client.post(
                    f"{self.base_url}/videos/{request.remix_of}/remix",
                    json=body,
                    headers=self._headers(),
                )
            else:
                data: dict[str, str] = {"model": request.model, "prompt": prompt}
                if request.size:
                    data["size"] = request.size
                if request.seconds:
                    data["seconds"] = str(request.seconds)

                files = None
                ref = request.reference_image
                if ref and ref.base64:
                    mime_type = ref.mime_type or "image/png"
                    filename = ref.filename or f"reference.{extension_from_mime(mime_type)}"
                    files = {
                        "input_reference": (filename, decode_base64(ref.base64), mime_type),
                    }

                resp = await self._client.post(
                    f"{self.base_url}/videos",
                    data=data,
                    files=files,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise ProviderRejected(f"OpenAI {action} request failed: {e}") from e

        if resp.status_code >= 400:
            raise ProviderRejected(f"OpenAI {action} error: {error_text(resp)}")

        payload = json_object(resp)
        if payload is None:
            raise ProviderRejected(f"OpenAI {action} returned a non-JSON response")
        if not payload.get("id"):
            raise ProviderRejected("OpenAI response missing video identifier")

        logger.info(
            "Sora job created: %s (model=%s, remix_of=%s)",
            payload["id"], request.model, request.remix_of,
        )
        return self._to_update(payload)

    async def poll(self, update: ProviderUpdate) -> ProviderUpdate:
        resp = await self._client.get(
            f"{self.base_url}/videos/{update.handle}",
            headers=self._headers(),
        )
        return self._to_update(self._status_payload(resp, "OpenAI video"))

    def resolve_output(self, update: ProviderUpdate) -> ProviderOutput:
        if update.status == JobStatus.COMPLETED:
            return ProviderOutput(
                video_id=update.handle,
                video_ref=update.handle,
                thumbnail_ref=update.handle,
                raw=update.payload,
            )

        logger.error("Sora job %s failed: %s", update.handle, json.dumps(update.payload, default=str))

        error = update.payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            message = str(error["message"])
        elif error:
            message = json.dumps(error, default=str)
        else:
            message = f"OpenAI returned status {update.payload.get('status') or 'unknown'}"

        if isinstance(error, dict) and error.get("type") == "moderation_blocked":
            raise ContentFiltered(message + SORA_CONTENT_GUIDANCE, reasons=[message])
        raise ProviderFailed(message)

    async def download_video(self, output: ProviderOutput) -> bytes:
        return await self._fetch_bytes(
            f"{self.base_url}/videos/{output.video_ref}/content?variant=video",
            self._headers(),
            "video",
        )

    async def download_thumbnail(self, output: ProviderOutput) -> bytes | None:
        if not output.thumbnail_ref:
            return None
        return await self._fetch_bytes(
            f"{self.base_url}/videos/{output.thumbnail_ref}/content?variant=thumbnail",
            self._headers(),
            "thumbnail",
        )

    def _to_update(self, payload: dict[str, Any]) -> ProviderUpdate:
        status = map_status(payload.get("status"))
        progress = payload.get("progress")
        return ProviderUpdate(
            handle=str(payload.get("id")),
            status=status,
            done=status.is_terminal,
            progress=int(progress) if isinstance(progress, (int, float)) else None,
            payload=payload,
        )
