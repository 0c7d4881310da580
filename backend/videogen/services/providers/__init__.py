"""Video provider implementations.

Each provider module implements the async generation pattern:
  create remote job → poll status → download → hand bytes to the asset store
"""

from __future__ import annotations

import httpx

from videogen.config import Settings
from videogen.schemas.video import PROVIDER_GOOGLE, PROVIDER_OPENAI
from videogen.services.providers.base import ProviderAdapter, ProviderOutput, ProviderUpdate
from videogen.services.providers.google_video import GoogleVideoAdapter
from videogen.services.providers.openai_video import OpenAIVideoAdapter

__all__ = [
    "GoogleVideoAdapter",
    "OpenAIVideoAdapter",
    "ProviderAdapter",
    "ProviderOutput",
    "ProviderUpdate",
    "build_adapters",
]


def build_adapters(settings: Settings, http_client: httpx.AsyncClient) -> dict[str, ProviderAdapter]:
    """One adapter per provider family that has a credential configured."""
    adapters: dict[str, ProviderAdapter] = {}
    if settings.OPENAI_API_KEY:
        adapters[PROVIDER_OPENAI] = OpenAIVideoAdapter(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            http_client=http_client,
        )
    if settings.GOOGLE_API_KEY:
        adapters[PROVIDER_GOOGLE] = GoogleVideoAdapter(
            api_key=settings.GOOGLE_API_KEY,
            base_url=settings.GOOGLE_BASE_URL,
            http_client=http_client,
        )
    return adapters
