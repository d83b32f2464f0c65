from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Alert severity levels, declared in increasing order of urgency."""

    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"

    @property
    def rank(self) -> int:
        """Position in the urgency order (info=0 .. critical=3)."""
        return list(Severity).index(self)


class HealthResponse(BaseModel):
    """Response model for health endpoints."""

    status: str = Field(..., description="High-level health status string (e.g., 'ok').")
    message: str = Field(..., description="Human-readable status message.")
    timestamp: datetime = Field(..., description="UTC timestamp at time of response.")


class ErrorResponse(BaseModel):
    """Standard error response envelope for the query facade."""

    detail: str = Field(..., description="Human-readable error details.")
    code: Optional[str] = Field(default=None, description="Optional machine-readable error code.")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata for debugging.")


# PUBLIC_INTERFACE
def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
