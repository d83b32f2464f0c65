from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from src.sensorhub.errors import PipelineError, ValidationError
from src.sensorhub.schemas.ingest import IngestErrorResponse, IngestResponse
from src.sensorhub.state import get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest", tags=["Ingest"])

# Device gateways call this endpoint directly, from any origin.
INGEST_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def _error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=IngestErrorResponse(error=message).model_dump(),
        headers=INGEST_CORS_HEADERS,
    )


@router.options("", include_in_schema=False)
def ingest_preflight() -> PlainTextResponse:
    """CORS preflight for device gateways."""
    return PlainTextResponse("ok", status_code=200, headers=INGEST_CORS_HEADERS)


@router.post(
    "",
    response_model=IngestResponse,
    responses={400: {"model": IngestErrorResponse}},
    summary="Ingest a sensor reading",
    description=(
        "Register the device if unseen, store the reading, evaluate threshold rules, store any alerts and "
        "push the reading/alerts to live subscribers. Alert persistence is best-effort: when it fails the "
        "reading is still stored and `alerts_error` is set."
    ),
    operation_id="ingest_reading",
)
async def ingest_reading(request: Request) -> JSONResponse:
    """Ingest one reading posted by a device gateway."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("request body must be valid JSON")

    pipeline = get_state(request.app).pipeline
    try:
        result = await pipeline.ingest(payload)
    except ValidationError as exc:
        logger.info("Rejected ingestion payload: %s", exc)
        return _error(str(exc))
    except PipelineError as exc:
        logger.warning("Ingestion failed: %s", exc)
        return _error(str(exc))
    except Exception:
        logger.exception("Unexpected ingestion failure")
        return _error("internal error while processing reading")

    body = IngestResponse(
        success=True,
        data=result.reading,
        alerts_created=result.alerts_created,
        alerts_error=result.alerts_error,
    )
    return JSONResponse(
        status_code=200,
        content=body.model_dump(mode="json", exclude_none=False),
        headers=INGEST_CORS_HEADERS,
    )
