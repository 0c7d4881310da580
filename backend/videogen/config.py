from __future__ import annotations
"""Application configuration using Pydantic Settings."""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VideoGen orchestrator settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "VideoGen"
    DEBUG: bool = False

    # --- OpenAI (Sora, polling-job API) ---
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    PROMPT_ENHANCER_MODEL: str = "gpt-4o-mini"

    # --- Google (Veo, long-running operations) ---
    GOOGLE_API_KEY: str = ""
    GOOGLE_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    HTTP_TIMEOUT: float = 120.0

    # --- Blob storage ---
    STORAGE_TYPE: str = "local"  # local | s3
    BLOB_STORAGE_PATH: str = os.path.join(os.path.expanduser("~"), ".videogen", "storage")
    STORAGE_FOLDER: str = "generated-videos"

    S3_ENDPOINT_URL: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_BUCKET_NAME: str = "default-bucket"
    S3_REGION: str = "us-east-1"
    S3_SECURE: bool | None = None

    # --- Live job registry ---
    JOB_STORE: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # --- Job lifecycle ---
    VIDEO_JOB_RETENTION_SECONDS: float = 24 * 60 * 60
    VIDEO_POLL_INTERVAL: float = 5.0
    VIDEO_MAX_POLL_ATTEMPTS: int = 120  # ~10 minutes at 5s

    # --- Retrieval indirection used in stored asset URLs ---
    FILE_URL_PREFIX: str = "/api/videos/files"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
