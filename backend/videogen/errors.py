"""Error taxonomy for video generation jobs.

Every error carries a stable ``code`` (written into failed jobs and API error
bodies) and the HTTP status the API layer answers with.
"""

from __future__ import annotations


class VideoGenerationError(Exception):
    """Base class for all orchestrator errors."""

    code: str = "InternalError"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidRequest(VideoGenerationError):
    code = "InvalidRequest"
    status_code = 400


class UnsupportedModel(VideoGenerationError):
    code = "UnsupportedModel"
    status_code = 400


class ProviderNotConfigured(VideoGenerationError):
    code = "ProviderNotConfigured"
    status_code = 503


class ProviderRejected(VideoGenerationError):
    """The provider refused the creation call (bad remix target, quota, ...)."""

    code = "ProviderRejected"
    status_code = 502


class ProviderFailed(VideoGenerationError):
    """The provider reported a terminal failure for an accepted job."""

    code = "ProviderFailed"
    status_code = 502


class ContentFiltered(VideoGenerationError):
    """Provider-side safety rejection, possibly after the job reported done."""

    code = "ContentFiltered"
    status_code = 422

    def __init__(self, message: str, reasons: list[str] | None = None):
        super().__init__(message)
        self.reasons = list(reasons or [])


class PollTimeout(VideoGenerationError):
    code = "PollTimeout"
    status_code = 504


class DownloadFailed(VideoGenerationError):
    code = "DownloadFailed"
    status_code = 502


class PersistenceError(VideoGenerationError):
    code = "PersistenceError"
    status_code = 500


class NotFound(VideoGenerationError):
    code = "NotFound"
    status_code = 404


class Forbidden(VideoGenerationError):
    code = "Forbidden"
    status_code = 403


class StorageError(Exception):
    """Blob backend I/O failure."""


class StorageConfigurationError(RuntimeError):
    """Raised when storage configuration is invalid."""
