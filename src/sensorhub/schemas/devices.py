from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    """Lifecycle status of a device. Devices are soft-retired, never deleted."""

    active = "active"
    inactive = "inactive"
    maintenance = "maintenance"


DEFAULT_DEVICE_TYPE = "sensor"


# PUBLIC_INTERFACE
def default_device_name(device_id: str) -> str:
    """Display name given to auto-provisioned devices."""
    return f"Device {device_id}"


class DeviceBase(BaseModel):
    """Base fields for a registered device."""

    device_id: str = Field(..., description="External, stable device identifier.")
    device_name: str = Field(..., description="Display name for the device.")
    device_type: str = Field(DEFAULT_DEVICE_TYPE, description="Device type (defaults to 'sensor').")
    location: Optional[str] = Field(default=None, description="Optional free-form location.")


class DeviceCreate(DeviceBase):
    """Request body for explicitly registering a device."""

    status: DeviceStatus = Field(DeviceStatus.active, description="Initial lifecycle status.")


class DeviceStatusUpdate(BaseModel):
    """Request body for a status transition."""

    status: DeviceStatus = Field(..., description="New lifecycle status.")


class DeviceOut(DeviceBase):
    """Response model representing a device."""

    id: str = Field(..., description="Server-assigned record identifier.")
    status: DeviceStatus = Field(..., description="Lifecycle status.")
    created_at: datetime = Field(..., description="UTC timestamp when the device was registered.")
    updated_at: datetime = Field(..., description="UTC timestamp of the last registry write.")


class DeviceListResponse(BaseModel):
    """Envelope for listing devices."""

    items: List[DeviceOut] = Field(..., description="Registered devices, newest first.")
    total: int = Field(..., ge=0, description="Total number of devices returned.")
