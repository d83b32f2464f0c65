from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from src.sensorhub.errors import NotFoundError
from src.sensorhub.schemas.alerts import AlertCreate, AlertListResponse, AlertOut
from src.sensorhub.schemas.common import ErrorResponse
from src.sensorhub.state import get_state

router = APIRouter(prefix="/api/alerts", tags=["Alerts"])


@router.get(
    "/active",
    response_model=AlertListResponse,
    summary="List active alerts",
    description="Unresolved alerts sorted by created_at desc. Optionally filtered to one device.",
    operation_id="list_active_alerts",
)
def list_active_alerts(
    request: Request,
    device_id: Optional[str] = Query(default=None, alias="deviceId", description="Optional device filter."),
    limit: int = Query(0, ge=0, le=1000, description="Max alerts to return (0 = all)."),
) -> AlertListResponse:
    """List unresolved alerts."""
    items = get_state(request.app).alerts.list_active(device_id=device_id, limit=limit)
    return AlertListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=AlertOut,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create alert",
    description="Create an alert for a registered device (operator action).",
    operation_id="create_alert",
)
def create_alert(request: Request, payload: AlertCreate) -> AlertOut:
    """Create an alert and notify alert subscribers."""
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="message must not be empty")
    state = get_state(request.app)
    if state.devices.get_device(payload.device_id) is None:
        raise HTTPException(status_code=400, detail="device not registered")
    alert = state.alerts.create(payload)
    state.notifier.publish_alert(alert)
    return alert


@router.get(
    "/{alert_id}",
    response_model=AlertOut,
    responses={404: {"model": ErrorResponse}},
    summary="Get alert",
    description="Fetch one alert by id, resolved or not.",
    operation_id="get_alert",
)
def get_alert(
    request: Request,
    alert_id: str = Path(..., description="Alert identifier."),
) -> AlertOut:
    """Get an alert."""
    alert = get_state(request.app).alerts.get(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="alert not found")
    return alert


@router.post(
    "/{alert_id}/resolve",
    response_model=AlertOut,
    responses={404: {"model": ErrorResponse}},
    summary="Resolve alert",
    description="Mark an alert resolved. Resolving twice is a no-op that keeps the first resolved_at.",
    operation_id="resolve_alert",
)
def resolve_alert(
    request: Request,
    alert_id: str = Path(..., description="Alert identifier."),
) -> AlertOut:
    """Resolve an alert."""
    try:
        return get_state(request.app).alerts.resolve(alert_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="alert not found") from exc
