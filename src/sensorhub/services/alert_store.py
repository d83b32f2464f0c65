from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from uuid import uuid4

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.errors import NotFoundError, StorageError
from src.sensorhub.schemas.alerts import AlertDraft, AlertOut, AlertType
from src.sensorhub.schemas.common import Severity, as_utc, utc_now

logger = logging.getLogger(__name__)


def _doc_to_out(doc: dict) -> AlertOut:
    resolved_at = doc.get("resolved_at")
    return AlertOut(
        id=doc["id"],
        device_id=doc["device_id"],
        alert_type=AlertType(doc["alert_type"]),
        message=doc.get("message", ""),
        severity=Severity(doc.get("severity", Severity.warning.value)),
        is_resolved=bool(doc.get("is_resolved", False)),
        created_at=as_utc(doc["created_at"]),
        resolved_at=as_utc(resolved_at) if resolved_at is not None else None,
    )


def _draft_to_doc(draft: AlertDraft, now) -> dict:
    return {
        "id": str(uuid4()),
        "device_id": draft.device_id,
        "alert_type": draft.alert_type.value,
        "message": draft.message,
        "severity": draft.severity.value,
        "is_resolved": False,
        "created_at": now,
        "resolved_at": None,
    }


class AlertStore:
    """Alert persistence (telemetry.device_alerts): append-only plus resolution fields."""

    def __init__(self, mongo: MongoManager):
        self._mongo = mongo

    def _col(self):
        return self._mongo.collections().device_alerts

    # PUBLIC_INTERFACE
    def append(self, drafts: Sequence[AlertDraft]) -> List[AlertOut]:
        """Persist a batch of drafts as unresolved alerts. An empty batch performs no write."""
        if not drafts:
            return []
        now = utc_now()
        docs = [_draft_to_doc(d, now) for d in drafts]
        try:
            # insert_many adds _id to the documents it is given; pass copies.
            self._col().insert_many([dict(d) for d in docs], ordered=True)
        except PyMongoError as exc:
            raise StorageError(f"failed to store {len(docs)} alert(s)") from exc
        return [_doc_to_out(d) for d in docs]

    # PUBLIC_INTERFACE
    def create(self, draft: AlertDraft) -> AlertOut:
        """Persist a single operator-created alert."""
        return self.append([draft])[0]

    # PUBLIC_INTERFACE
    def get(self, alert_id: str) -> Optional[AlertOut]:
        """Fetch an alert by id; None if unknown."""
        try:
            doc = self._col().find_one({"id": alert_id}, projection={"_id": 0})
        except PyMongoError as exc:
            raise StorageError(f"failed to read alert {alert_id}") from exc
        return _doc_to_out(doc) if doc else None

    # PUBLIC_INTERFACE
    def list_active(self, device_id: Optional[str] = None, limit: int = 0) -> List[AlertOut]:
        """Unresolved alerts, newest first, optionally for one device. limit=0 means no limit."""
        q: dict = {"is_resolved": False}
        if device_id:
            q["device_id"] = device_id
        try:
            cur = self._col().find(q, projection={"_id": 0}).sort("created_at", -1)
            if limit > 0:
                cur = cur.limit(int(limit))
            docs = list(cur)
        except PyMongoError as exc:
            raise StorageError("failed to list active alerts") from exc
        return [_doc_to_out(d) for d in docs]

    # PUBLIC_INTERFACE
    def resolve(self, alert_id: str) -> AlertOut:
        """
        Mark an alert resolved.

        Resolving an already-resolved alert is a no-op: the original resolved_at is kept.
        Raises NotFoundError for an unknown id.
        """
        col = self._col()
        try:
            doc = col.find_one_and_update(
                {"id": alert_id, "is_resolved": False},
                {"$set": {"is_resolved": True, "resolved_at": utc_now()}},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                doc = col.find_one({"id": alert_id}, projection={"_id": 0})
        except PyMongoError as exc:
            raise StorageError(f"failed to resolve alert {alert_id}") from exc

        if doc is None:
            raise NotFoundError(f"alert {alert_id} not found")
        return _doc_to_out(doc)
