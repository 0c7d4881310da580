"""Prompt enhancer: expands a one-line idea into a structured shot description.

A single OpenAI chat-completions call in JSON mode. The result is returned to
the caller as-is and is never fed into a generation job automatically.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from videogen.errors import ProviderFailed, ProviderNotConfigured, ProviderRejected
from videogen.schemas.video import DialogHint
from videogen.services.providers.base import error_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert cinematographer and video director. Given a basic video prompt, enhance it into a structured JSON format following professional video production best practices.

Return a JSON object with these fields (skip any that aren't relevant):
- title: A catchy title for the scene
- logline: An expanded description of the scene
- genre: Array of genres (e.g., ["action", "drama"])
- mood: Array of moods (e.g., ["intense", "dramatic"])
- environment: Object with setting, time_of_day, weather
- lighting: Object with key (main lighting) and special (special effects)
- look_profile: Object with lut_style, contrast, saturation, grain
- camera: Object with rig (equipment), lens (focal_length_mm, aperture_f)
- composition: Object with framing (shot type)
- camera_motion: Object with move_type (camera movement description)
- fx: Object with vfx (visual effects array) and sfx (sound effects array)
- audio: Object with dialog containing text, tone, emotion (suggest appropriate dialog if not provided)
- negative_prompts: Array of things to avoid

Return ONLY valid JSON, no markdown or explanations."""


def build_user_prompt(prompt: str, dialog: DialogHint | None = None) -> str:
    if dialog is None or not dialog.text:
        return prompt
    return (
        f'{prompt}\n\nDialog/Voice-over: "{dialog.text}" '
        f"(tone: {dialog.tone}, emotion: {dialog.emotion})"
    )


class PromptEnhancer:
    """Thin client for the chat-completions endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.model = model
        self.temperature = temperature
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._own_client = http_client is None

    async def enhance(self, prompt: str, dialog: DialogHint | None = None) -> dict[str, Any]:
        """Return the model's JSON shot description for ``prompt``.

        Raises:
            ProviderNotConfigured: no OpenAI key.
            ProviderRejected: the API answered with an error status.
            ProviderFailed: transport error, empty or non-JSON content.
        """
        if not self.api_key:
            raise ProviderNotConfigured("OpenAI API key not configured")

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(prompt, dialog)},
            ],
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info("Prompt enhancement request model=%s length=%d", self.model, len(prompt))
        try:
            response = await self._client.post(self.url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise ProviderFailed(f"Prompt enhancement request failed: {e}") from e

        if response.status_code >= 400:
            logger.error("Prompt enhancement HTTP %d", response.status_code)
            raise ProviderRejected(f"OpenAI API error: {error_text(response)}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise ProviderFailed("No content in OpenAI response")

        try:
            enhanced = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProviderFailed("OpenAI returned invalid JSON for the enhanced prompt") from e
        if not isinstance(enhanced, dict):
            raise ProviderFailed("OpenAI returned a non-object enhanced prompt")

        logger.info("Prompt enhancement OK, %d fields", len(enhanced))
        return enhanced

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()
