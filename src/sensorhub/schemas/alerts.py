from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.sensorhub.schemas.common import Severity


class AlertType(str, Enum):
    """Condition types known to the rule engine."""

    high_temperature = "high_temperature"
    low_temperature = "low_temperature"
    high_humidity = "high_humidity"
    low_battery = "low_battery"


class AlertDraft(BaseModel):
    """An alert produced by the rule engine (or an operator) that is not yet stored."""

    device_id: str = Field(..., description="Device the alert applies to.")
    alert_type: AlertType = Field(..., description="Triggering condition type.")
    message: str = Field(..., description="Human-readable message.")
    severity: Severity = Field(..., description="Alert severity.")


class AlertCreate(AlertDraft):
    """Request body for creating an alert through the operator API."""


class AlertOut(AlertDraft):
    """Response model for a stored alert."""

    id: str = Field(..., description="Server-assigned alert identifier.")
    is_resolved: bool = Field(..., description="Whether an operator resolved the alert.")
    created_at: datetime = Field(..., description="UTC creation timestamp.")
    resolved_at: Optional[datetime] = Field(
        default=None, description="UTC resolution timestamp; set iff is_resolved."
    )


class AlertListResponse(BaseModel):
    """Envelope for listing alerts."""

    items: List[AlertOut] = Field(..., description="Alerts, newest first.")
    total: int = Field(..., ge=0, description="Total count returned.")
