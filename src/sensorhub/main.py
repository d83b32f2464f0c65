from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.sensorhub.config import BackendConfig, load_config
from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.errors import NotFoundError, StorageError
from src.sensorhub.routers import alerts, devices, health, ingest, realtime
from src.sensorhub.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and liveness."},
    {"name": "Ingest", "description": "Sensor reading ingestion entry point."},
    {"name": "Devices", "description": "Device registry and reading queries."},
    {"name": "Alerts", "description": "Active alerts and operator actions."},
    {"name": "Realtime", "description": "WebSocket push of new readings and alerts."},
]

logger = logging.getLogger(__name__)


def _allowed_origins(config: BackendConfig) -> List[str]:
    # Device gateways post from anywhere unless origins are pinned via FRONTEND_URL / CORS_ALLOW_ORIGINS.
    if not config.cors_extra_origins:
        return ["*"]
    origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    origins.extend(config.cors_extra_origins)
    # De-dupe while preserving order
    seen = set()
    return [o for o in origins if not (o in seen or seen.add(o))]


def _register_lifecycle(app: FastAPI) -> None:
    @app.on_event("startup")
    async def _on_startup() -> None:
        """Startup hook: connect to Mongo, validate connectivity and ensure indexes."""
        state = get_state(app)

        # Connect + verify early so a misconfigured Mongo fails the deploy instead of every ingest.
        state.mongo.connect()
        if not state.mongo.ping():
            raise RuntimeError(
                "Mongo connectivity check failed during startup. Verify BACKEND_MONGO_URI or MONGO_URI_FILE."
            )
        state.mongo.init_indexes()
        logger.info("Telemetry backend started (db=%s)", state.config.mongo_db_name)

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        """Shutdown hook: end live subscriptions and close Mongo connections."""
        state = get_state(app)
        try:
            state.notifier.close_all()
        except Exception:
            logger.exception("Error closing notifier subscriptions")
        state.mongo.close()


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorageError)
    async def _storage_error(_: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure: %s", exc)
        return JSONResponse(status_code=503, content={"detail": "storage unavailable"})

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})


# PUBLIC_INTERFACE
def create_app(config: Optional[BackendConfig] = None, mongo: Optional[MongoManager] = None) -> FastAPI:
    """Build the FastAPI application around a config and (optionally) a pre-built Mongo manager."""
    config = config or load_config()

    app = FastAPI(
        title="Sensor Telemetry API",
        description=(
            "Ingests sensor readings, auto-registers devices, derives threshold alerts and pushes new "
            "readings/alerts to live dashboard subscribers over WebSockets."
        ),
        version="0.1.0",
        openapi_tags=openapi_tags,
    )

    # Initialize typed app state (config + Mongo manager + services)
    init_state(app, config, mongo)
    _register_lifecycle(app)
    _register_error_handlers(app)

    origins = _allowed_origins(config)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin.
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(ingest.router)
    app.include_router(devices.router)
    app.include_router(alerts.router)
    app.include_router(realtime.router)
    return app


app = create_app()
