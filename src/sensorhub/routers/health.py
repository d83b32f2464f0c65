from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.sensorhub.config import sanitize_mongo_uri
from src.sensorhub.schemas.common import HealthResponse, utc_now
from src.sensorhub.state import get_state

router = APIRouter(tags=["Health"])


class MongoConnectivityResponse(BaseModel):
    """Response model for backend↔Mongo connectivity diagnostics."""

    ok: bool = Field(..., description="Whether the backend can successfully ping MongoDB.")
    mongo_uri_source: str = Field(..., description="Which source provided the effective MongoDB URI.")
    mongo_uri_file_path: str | None = Field(
        default=None,
        description="Resolved MONGO_URI_FILE path when one was configured.",
    )
    mongo_uri_sanitized: str = Field(..., description="MongoDB URI with credentials masked.")
    db_name: str = Field(..., description="Telemetry database name.")
    timestamp: str = Field(..., description="UTC timestamp when the check was performed (ISO string).")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional debug metadata.")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the dashboard.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/mongo",
    response_model=MongoConnectivityResponse,
    summary="Mongo connectivity check",
    description=(
        "Pings the configured MongoDB and reports how the URI was resolved "
        "(MONGO_URI_FILE, env, or default). Credentials are masked."
    ),
    operation_id="mongo_connectivity_check",
)
def mongo_connectivity_check(request: Request) -> MongoConnectivityResponse:
    """Connectivity check endpoint to validate backend↔Mongo and report the URI source."""
    state = get_state(request.app)
    ok = state.mongo.ping()

    return MongoConnectivityResponse(
        ok=ok,
        mongo_uri_source=state.config.mongo_uri_source,
        mongo_uri_file_path=state.config.mongo_uri_file_path,
        mongo_uri_sanitized=sanitize_mongo_uri(state.config.mongo_uri),
        db_name=state.config.mongo_db_name,
        timestamp=utc_now().isoformat(),
        meta={"subscribers": state.notifier.subscriber_count()},
    )
