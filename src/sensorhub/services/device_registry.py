from __future__ import annotations

import logging
from typing import List, Optional
from uuid import uuid4

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.errors import ConflictError, NotFoundError, StorageError
from src.sensorhub.schemas.common import as_utc, utc_now
from src.sensorhub.schemas.devices import (
    DEFAULT_DEVICE_TYPE,
    DeviceCreate,
    DeviceOut,
    DeviceStatus,
    default_device_name,
)

logger = logging.getLogger(__name__)


def _doc_to_out(doc: dict) -> DeviceOut:
    return DeviceOut(
        id=doc["id"],
        device_id=doc["device_id"],
        device_name=doc.get("device_name") or default_device_name(doc["device_id"]),
        device_type=doc.get("device_type") or DEFAULT_DEVICE_TYPE,
        location=doc.get("location"),
        status=DeviceStatus(doc.get("status", DeviceStatus.active.value)),
        created_at=as_utc(doc["created_at"]),
        updated_at=as_utc(doc["updated_at"]),
    )


class DeviceRegistry:
    """
    Registry of known devices (telemetry.devices).

    First-reading auto-provisioning relies on the unique index on device_id, so
    it stays correct when several processes ingest for the same new device.
    """

    def __init__(self, mongo: MongoManager):
        self._mongo = mongo

    def _col(self):
        return self._mongo.collections().devices

    # PUBLIC_INTERFACE
    def ensure_device(self, device_id: str) -> DeviceOut:
        """Return the device for device_id, creating it with defaults if it does not exist yet."""
        col = self._col()
        now = utc_now()
        defaults = {
            "id": str(uuid4()),
            "device_id": device_id,
            "device_name": default_device_name(device_id),
            "device_type": DEFAULT_DEVICE_TYPE,
            "location": None,
            "status": DeviceStatus.active.value,
            "created_at": now,
            "updated_at": now,
        }
        try:
            doc = col.find_one_and_update(
                {"device_id": device_id},
                {"$setOnInsert": defaults},
                upsert=True,
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the race against a concurrent upsert; the winner's record is the device.
            logger.info("Concurrent registration for device_id=%s; using existing record", device_id)
            try:
                doc = col.find_one({"device_id": device_id}, projection={"_id": 0})
            except PyMongoError as exc:
                raise StorageError(f"failed to read device {device_id}") from exc
        except PyMongoError as exc:
            raise StorageError(f"failed to ensure device {device_id}") from exc

        if doc is None:
            raise StorageError(f"device {device_id} missing after upsert")
        if doc.get("id") == defaults["id"]:
            logger.info("Auto-provisioned device device_id=%s", device_id)
        return _doc_to_out(doc)

    # PUBLIC_INTERFACE
    def create_device(self, payload: DeviceCreate) -> DeviceOut:
        """Explicitly register a device. Raises ConflictError if device_id is taken."""
        now = utc_now()
        doc = {
            "id": str(uuid4()),
            "device_id": payload.device_id.strip(),
            "device_name": payload.device_name.strip(),
            "device_type": payload.device_type.strip() or DEFAULT_DEVICE_TYPE,
            "location": payload.location,
            "status": payload.status.value,
            "created_at": now,
            "updated_at": now,
        }
        try:
            self._col().insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConflictError(f"device {doc['device_id']} already exists") from exc
        except PyMongoError as exc:
            raise StorageError("failed to create device") from exc
        return _doc_to_out(doc)

    # PUBLIC_INTERFACE
    def get_device(self, device_id: str) -> Optional[DeviceOut]:
        """Fetch a device by its external id. Returns None if not found."""
        try:
            doc = self._col().find_one({"device_id": device_id}, projection={"_id": 0})
        except PyMongoError as exc:
            raise StorageError(f"failed to read device {device_id}") from exc
        return _doc_to_out(doc) if doc else None

    # PUBLIC_INTERFACE
    def list_devices(self) -> List[DeviceOut]:
        """Return all devices, newest first."""
        try:
            docs = list(self._col().find({}, projection={"_id": 0}).sort("created_at", -1))
        except PyMongoError as exc:
            raise StorageError("failed to list devices") from exc
        return [_doc_to_out(d) for d in docs]

    # PUBLIC_INTERFACE
    def set_status(self, device_id: str, status: DeviceStatus) -> DeviceOut:
        """Set a device's lifecycle status (idempotent; always bumps updated_at)."""
        try:
            doc = self._col().find_one_and_update(
                {"device_id": device_id},
                {"$set": {"status": DeviceStatus(status).value, "updated_at": utc_now()}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise StorageError(f"failed to update device {device_id}") from exc
        if doc is None:
            raise NotFoundError(f"device {device_id} not found")
        return _doc_to_out(doc)
