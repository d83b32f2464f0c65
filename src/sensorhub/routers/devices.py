from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from src.sensorhub.errors import ConflictError, NotFoundError, StorageError
from src.sensorhub.schemas.common import ErrorResponse
from src.sensorhub.schemas.devices import DeviceCreate, DeviceListResponse, DeviceOut, DeviceStatusUpdate
from src.sensorhub.schemas.readings import ReadingHistoryResponse, ReadingOut
from src.sensorhub.state import get_state

router = APIRouter(prefix="/api/devices", tags=["Devices"])


@router.get(
    "",
    response_model=DeviceListResponse,
    responses={503: {"model": ErrorResponse}},
    summary="List devices",
    description="Return all registered devices, newest first.",
    operation_id="list_devices",
)
def list_devices(request: Request) -> DeviceListResponse:
    """List all registered devices."""
    items = get_state(request.app).devices.list_devices()
    return DeviceListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=DeviceOut,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register device",
    description="Explicitly register a device. Devices are also created automatically on their first reading.",
    operation_id="create_device",
)
def create_device(request: Request, payload: DeviceCreate) -> DeviceOut:
    """Register a new device."""
    if not payload.device_id.strip():
        raise HTTPException(status_code=400, detail="device_id must not be empty")
    if not payload.device_name.strip():
        raise HTTPException(status_code=400, detail="device_name must not be empty")
    try:
        return get_state(request.app).devices.create_device(payload)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get(
    "/{device_id}",
    response_model=DeviceOut,
    responses={404: {"model": ErrorResponse}},
    summary="Get device",
    description="Fetch a single device by its external device_id.",
    operation_id="get_device",
)
def get_device(request: Request, device_id: str = Path(..., description="External device identifier")) -> DeviceOut:
    """Fetch a single device."""
    device = get_state(request.app).devices.get_device(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="device not found")
    return device


@router.patch(
    "/{device_id}/status",
    response_model=DeviceOut,
    responses={404: {"model": ErrorResponse}},
    summary="Update device status",
    description="Transition a device to active, inactive or maintenance. Idempotent.",
    operation_id="update_device_status",
)
def update_device_status(
    request: Request,
    payload: DeviceStatusUpdate,
    device_id: str = Path(..., description="External device identifier"),
) -> DeviceOut:
    """Update a device's lifecycle status."""
    try:
        return get_state(request.app).devices.set_status(device_id, payload.status)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="device not found") from exc


@router.get(
    "/{device_id}/readings/latest",
    response_model=ReadingOut,
    responses={404: {"model": ErrorResponse}},
    summary="Latest reading",
    description="Most recent stored reading for a device.",
    operation_id="get_latest_reading",
)
def get_latest_reading(
    request: Request,
    device_id: str = Path(..., description="External device identifier"),
) -> ReadingOut:
    """Return the latest reading for a device."""
    reading = get_state(request.app).readings.latest(device_id)
    if reading is None:
        raise HTTPException(status_code=404, detail="no readings for device")
    return reading


@router.get(
    "/{device_id}/readings",
    response_model=ReadingHistoryResponse,
    summary="Reading history",
    description="Readings for a device over the last `hours` hours, ascending by timestamp.",
    operation_id="get_reading_history",
)
def get_reading_history(
    request: Request,
    device_id: str = Path(..., description="External device identifier"),
    hours: Optional[int] = Query(default=None, ge=1, description="Lookback window in hours."),
) -> ReadingHistoryResponse:
    """Return a device's reading history."""
    state = get_state(request.app)
    window = hours or state.config.history_default_hours
    window = min(window, state.config.history_max_hours)
    items = state.readings.history(device_id, timedelta(hours=window))
    return ReadingHistoryResponse(device_id=device_id, hours=window, items=items, total=len(items))
