from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.sensorhub.schemas.readings import ReadingOut


class IngestResponse(BaseModel):
    """Successful ingestion envelope."""

    success: bool = Field(True, description="Always true on a 200 response.")
    data: ReadingOut = Field(..., description="The stored reading.")
    alerts_created: int = Field(..., ge=0, description="Number of alerts persisted for this reading.")
    alerts_error: Optional[str] = Field(
        default=None,
        description="Set when alerts were triggered but could not be persisted; the reading is still stored.",
    )


class IngestErrorResponse(BaseModel):
    """Error envelope returned by the ingestion endpoint."""

    error: str = Field(..., description="Human-readable error message.")
