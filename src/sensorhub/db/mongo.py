from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MongoCollections:
    """Convenience wrapper for the three telemetry relations."""

    devices: Collection
    sensor_data: Collection
    device_alerts: Collection


class MongoManager:
    """
    MongoDB connection manager.

    Holds one MongoClient for the telemetry database. A pre-built client can be
    injected (tests pass a mongomock client); otherwise one is created lazily from the URI.
    """

    def __init__(self, mongo_uri: str, db_name: str, client: Optional[MongoClient] = None):
        self._mongo_uri = mongo_uri
        self._db_name = db_name
        self._client: Optional[MongoClient] = client
        self._lock = RLock()

    def connect(self) -> None:
        """Initialize the Mongo client if needed."""
        with self._lock:
            if self._client is not None:
                return
            # MongoClient is thread-safe and manages internal pooling.
            # tz_aware so stored timestamps round-trip as UTC-aware datetimes.
            self._client = MongoClient(self._mongo_uri, connect=True, tz_aware=True)

    # PUBLIC_INTERFACE
    def ping(self, timeout_ms: int = 1500) -> bool:
        """Ping MongoDB to validate connectivity (startup validation and health endpoint)."""
        try:
            if self._client is None:
                self.connect()
            assert self._client is not None
            self._client.admin.command("ping", maxTimeMS=int(max(250, timeout_ms)))
            return True
        except PyMongoError:
            logger.exception("Mongo ping failed (PyMongoError)")
            return False
        except Exception:
            logger.exception("Mongo ping failed (unexpected)")
            return False

    def close(self) -> None:
        """Close the Mongo client."""
        with self._lock:
            if self._client is not None:
                try:
                    self._client.close()
                except Exception:
                    logger.exception("Error closing MongoClient")
                self._client = None

    def db(self) -> Database:
        """Return the telemetry database handle."""
        if self._client is None:
            self.connect()
        assert self._client is not None
        return self._client[self._db_name]

    def collections(self) -> MongoCollections:
        """Return telemetry collections."""
        db = self.db()
        return MongoCollections(
            devices=db["devices"],
            sensor_data=db["sensor_data"],
            device_alerts=db["device_alerts"],
        )

    def init_indexes(self) -> None:
        """
        Create required indexes (idempotent).

        The unique index on devices.device_id is what makes first-reading
        auto-provisioning safe across processes.
        """
        cols = self.collections()

        # ---- Devices ----
        cols.devices.create_index([("device_id", ASCENDING)], unique=True, name="uniq_devices_device_id")
        cols.devices.create_index([("id", ASCENDING)], unique=True, name="uniq_devices_id")
        cols.devices.create_index([("created_at", DESCENDING)], name="idx_devices_created_at_desc")

        # ---- Sensor data ----
        # Common queries: latest per device, device + time range.
        cols.sensor_data.create_index(
            [("device_id", ASCENDING), ("timestamp", DESCENDING)], name="idx_sensor_data_device_ts"
        )
        cols.sensor_data.create_index([("id", ASCENDING)], unique=True, name="uniq_sensor_data_id")

        # ---- Device alerts ----
        cols.device_alerts.create_index([("id", ASCENDING)], unique=True, name="uniq_device_alerts_id")
        cols.device_alerts.create_index(
            [("is_resolved", ASCENDING), ("created_at", DESCENDING)], name="idx_device_alerts_active"
        )
        cols.device_alerts.create_index([("device_id", ASCENDING)], name="idx_device_alerts_device")
