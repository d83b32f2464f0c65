"""Error taxonomy shared by the stores, the ingestion pipeline and the routers."""

from __future__ import annotations

from typing import Optional


class TelemetryError(Exception):
    """Base class for all service errors."""


class ValidationError(TelemetryError):
    """Malformed or missing required input. Caused by the caller; never retried."""


class StorageError(TelemetryError):
    """Store unavailable or a constraint was violated. Callers may retry with backoff."""


class ConflictError(StorageError):
    """A unique key already exists (explicit creates only)."""


class NotFoundError(TelemetryError):
    """A targeted device or alert does not exist."""


class PipelineError(TelemetryError):
    """Wraps the failure of a required ingestion step."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
