from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional
from uuid import uuid4

from pymongo.errors import PyMongoError

from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.errors import StorageError
from src.sensorhub.schemas.common import as_utc, utc_now
from src.sensorhub.schemas.readings import NUMERIC_FIELDS, ReadingIn, ReadingOut

logger = logging.getLogger(__name__)


def _doc_to_out(doc: dict) -> ReadingOut:
    fields = {name: doc.get(name) for name in NUMERIC_FIELDS}
    return ReadingOut(
        id=doc["id"],
        device_id=doc["device_id"],
        raw_data=doc.get("raw_data"),
        timestamp=as_utc(doc["timestamp"]),
        **fields,
    )


class ReadingStore:
    """Append-only store for sensor readings (telemetry.sensor_data)."""

    def __init__(self, mongo: MongoManager):
        self._mongo = mongo

    def _col(self):
        return self._mongo.collections().sensor_data

    # PUBLIC_INTERFACE
    def append(self, reading: ReadingIn) -> ReadingOut:
        """Persist a reading, assigning its identity and server timestamp."""
        doc = reading.model_dump()
        doc["id"] = str(uuid4())
        doc["timestamp"] = utc_now()
        try:
            # insert_one mutates doc with _id; keep the stored form free of it.
            self._col().insert_one(dict(doc))
        except PyMongoError as exc:
            raise StorageError(f"failed to store reading for device {reading.device_id}") from exc
        logger.debug("Stored reading id=%s device_id=%s", doc["id"], reading.device_id)
        return _doc_to_out(doc)

    # PUBLIC_INTERFACE
    def latest(self, device_id: str) -> Optional[ReadingOut]:
        """Return the most recent reading for a device, or None."""
        try:
            doc = self._col().find_one(
                {"device_id": device_id},
                sort=[("timestamp", -1)],
                projection={"_id": 0},
            )
        except PyMongoError as exc:
            raise StorageError(f"failed to read latest reading for device {device_id}") from exc
        return _doc_to_out(doc) if doc else None

    # PUBLIC_INTERFACE
    def history(self, device_id: str, since: timedelta) -> List[ReadingOut]:
        """
        Return readings for a device newer than now - since, ascending by timestamp.

        The result is materialized at call time; later inserts are not reflected.
        """
        start = utc_now() - since
        try:
            docs = list(
                self._col()
                .find({"device_id": device_id, "timestamp": {"$gte": start}}, projection={"_id": 0})
                .sort("timestamp", 1)
            )
        except PyMongoError as exc:
            raise StorageError(f"failed to read history for device {device_id}") from exc
        return [_doc_to_out(d) for d in docs]
