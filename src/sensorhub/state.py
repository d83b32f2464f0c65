from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from src.sensorhub.config import BackendConfig
from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.services.alert_store import AlertStore
from src.sensorhub.services.device_registry import DeviceRegistry
from src.sensorhub.services.ingestion_pipeline import IngestionPipeline
from src.sensorhub.services.notifier import ChangeNotifier
from src.sensorhub.services.reading_store import ReadingStore


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: BackendConfig
    mongo: MongoManager
    notifier: ChangeNotifier
    devices: DeviceRegistry
    readings: ReadingStore
    alerts: AlertStore
    pipeline: IngestionPipeline


# PUBLIC_INTERFACE
def build_state(config: BackendConfig, mongo: Optional[MongoManager] = None) -> AppState:
    """Wire the stores, notifier and pipeline around one Mongo manager."""
    mongo = mongo or MongoManager(config.mongo_uri, config.mongo_db_name)
    notifier = ChangeNotifier(queue_size=config.notifier_queue_size)
    devices = DeviceRegistry(mongo)
    readings = ReadingStore(mongo)
    alerts = AlertStore(mongo)
    return AppState(
        config=config,
        mongo=mongo,
        notifier=notifier,
        devices=devices,
        readings=readings,
        alerts=alerts,
        pipeline=IngestionPipeline(devices, readings, alerts, notifier),
    )


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: BackendConfig, mongo: Optional[MongoManager] = None) -> AppState:
    """Initialize app.state with the wired services."""
    state = build_state(config, mongo)
    app.state.state = state
    return state


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
