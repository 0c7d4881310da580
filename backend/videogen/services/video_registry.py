"""Declarative video model routing table.

Single source of truth for which provider family serves each model and which
request parameters that model accepts.

Usage:
    from videogen.services.video_registry import VIDEO_REGISTRY
    cap = VIDEO_REGISTRY.resolve("sora-2")            # raises UnsupportedModel
    VIDEO_REGISTRY.validate(request)                  # raises InvalidRequest
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from videogen.errors import InvalidRequest, UnsupportedModel
from videogen.schemas.video import PROVIDER_GOOGLE, PROVIDER_OPENAI, VideoGenerationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoModelCapability:
    """Capability descriptor for a single video model."""
    provider: str
    model: str
    durations: tuple[int, ...]
    sizes: tuple[str, ...] = ()
    aspect_ratios: tuple[str, ...] = ()
    remix: bool = False
    reference_image: bool = True


class VideoModelRegistry:
    """In-memory model → provider routing table."""

    def __init__(self) -> None:
        self._models: dict[str, VideoModelCapability] = {}

    def register(self, cap: VideoModelCapability) -> None:
        self._models[cap.model] = cap

    def get(self, model: str) -> VideoModelCapability | None:
        return self._models.get(model)

    def resolve(self, model: str) -> VideoModelCapability:
        cap = self._models.get(model)
        if cap is None:
            raise UnsupportedModel(f"Unsupported video model: {model}")
        return cap

    def list_models(self, provider: str | None = None) -> list[VideoModelCapability]:
        if provider:
            return [c for c in self._models.values() if c.provider == provider]
        return list(self._models.values())

    def list_providers(self) -> list[str]:
        return sorted({c.provider for c in self._models.values()})

    def validate(self, request: VideoGenerationRequest) -> VideoModelCapability:
        """Validate request parameters against the model's capabilities.

        Returns the matching capability or raises UnsupportedModel/InvalidRequest.
        """
        cap = self.resolve(request.model)

        if request.remix_of and not cap.remix:
            raise InvalidRequest(f"Model {cap.model} does not support remixing")

        if request.reference_image and not cap.reference_image:
            raise InvalidRequest(f"Model {cap.model} does not accept a reference image")

        if request.seconds is not None and cap.durations and request.seconds not in cap.durations:
            raise InvalidRequest(
                f"Model {cap.model} does not support seconds={request.seconds} "
                f"(allowed: {', '.join(str(d) for d in cap.durations)})"
            )

        if request.size and cap.sizes and request.size not in cap.sizes:
            raise InvalidRequest(
                f"Model {cap.model} does not support size={request.size} "
                f"(allowed: {', '.join(cap.sizes)})"
            )

        if request.aspect_ratio and cap.aspect_ratios and request.aspect_ratio not in cap.aspect_ratios:
            raise InvalidRequest(
                f"Model {cap.model} does not support aspect_ratio={request.aspect_ratio}"
            )

        return cap

    def to_dict_list(self) -> list[dict[str, Any]]:
        """Serialize all models for API response."""
        return [
            {
                "provider": cap.provider,
                "model": cap.model,
                "durations": list(cap.durations),
                "sizes": list(cap.sizes),
                "aspectRatios": list(cap.aspect_ratios),
                "remix": cap.remix,
                "referenceImage": cap.reference_image,
            }
            for cap in self._models.values()
        ]


VIDEO_REGISTRY = VideoModelRegistry()

# ================== OpenAI Sora ==================

VIDEO_REGISTRY.register(VideoModelCapability(
    PROVIDER_OPENAI, "sora-2",
    durations=(4, 8, 12),
    sizes=("720x1280", "1280x720"),
    remix=True,
))

VIDEO_REGISTRY.register(VideoModelCapability(
    PROVIDER_OPENAI, "sora-2-pro",
    durations=(4, 8, 12),
    sizes=("720x1280", "1280x720", "1024x1792", "1792x1024"),
    remix=True,
))

# ================== Google Veo ==================

VIDEO_REGISTRY.register(VideoModelCapability(
    PROVIDER_GOOGLE, "veo-3.0-generate-001",
    durations=(4, 6, 8),
    aspect_ratios=("16:9", "9:16"),
))

VIDEO_REGISTRY.register(VideoModelCapability(
    PROVIDER_GOOGLE, "veo-3.0-fast-generate-001",
    durations=(4, 6, 8),
    aspect_ratios=("16:9", "9:16"),
))


logger.info(
    "Video registry initialized: %d models from %d providers",
    len(VIDEO_REGISTRY._models),
    len(VIDEO_REGISTRY.list_providers()),
)
