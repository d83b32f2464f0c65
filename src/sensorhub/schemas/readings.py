from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Numeric fields interpreted by the pipeline; anything else is opaque raw payload.
NUMERIC_FIELDS = ("temperature", "humidity", "pressure", "battery_level", "signal_strength")


class ReadingIn(BaseModel):
    """A validated inbound reading, before the store assigns identity and timestamp."""

    device_id: str = Field(..., description="Device the reading belongs to.")
    temperature: Optional[float] = Field(default=None, description="Temperature in °C.")
    humidity: Optional[float] = Field(default=None, description="Relative humidity in %.")
    pressure: Optional[float] = Field(default=None, description="Pressure (device units).")
    battery_level: Optional[float] = Field(default=None, description="Battery level in %.")
    signal_strength: Optional[float] = Field(default=None, description="Signal strength (device units).")
    raw_data: Optional[Dict[str, Any]] = Field(default=None, description="Opaque, unvalidated payload.")


class ReadingOut(ReadingIn):
    """A stored, immutable reading."""

    id: str = Field(..., description="Server-assigned reading identifier.")
    timestamp: datetime = Field(..., description="UTC timestamp assigned by the store at insertion.")


class ReadingHistoryResponse(BaseModel):
    """Envelope for a device's reading history."""

    device_id: str = Field(..., description="Device the readings belong to.")
    hours: int = Field(..., ge=1, description="Lookback window in hours.")
    items: List[ReadingOut] = Field(..., description="Readings ascending by timestamp.")
    total: int = Field(..., ge=0, description="Number of readings returned.")
