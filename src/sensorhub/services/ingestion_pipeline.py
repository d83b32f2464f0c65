from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional

from src.sensorhub.errors import PipelineError, TelemetryError, ValidationError
from src.sensorhub.schemas.alerts import AlertOut
from src.sensorhub.schemas.readings import NUMERIC_FIELDS, ReadingIn, ReadingOut
from src.sensorhub.services import alert_rules
from src.sensorhub.services.alert_store import AlertStore
from src.sensorhub.services.device_registry import DeviceRegistry
from src.sensorhub.services.notifier import ChangeNotifier
from src.sensorhub.services.reading_store import ReadingStore

logger = logging.getLogger(__name__)

_KNOWN_KEYS = frozenset(("device_id", "raw_data") + NUMERIC_FIELDS)


async def _run_in_thread(func, *args, **kwargs):
    """Run blocking pymongo calls in a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)


@dataclass
class IngestResult:
    """Outcome of one ingestion. alerts_error is set when alerts fired but could not be stored."""

    reading: ReadingOut
    alerts: List[AlertOut] = field(default_factory=list)
    alerts_error: Optional[str] = None

    @property
    def alerts_created(self) -> int:
        return len(self.alerts)

    @property
    def partial(self) -> bool:
        return self.alerts_error is not None


def _number(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    # bool is a Real subclass; a flag is not a measurement.
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except OverflowError as exc:
        raise ValidationError(f"{name} is out of range") from exc
    # The JSON decoder accepts NaN/Infinity literals; they cannot be stored or echoed back.
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


# PUBLIC_INTERFACE
def parse_payload(payload: Any) -> ReadingIn:
    """
    Validate a raw ingestion payload and build the reading to store.

    Recognized numeric fields are interpreted; raw_data and any unrecognized
    top-level keys are kept as the opaque raw payload.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be a JSON object")

    device_id = payload.get("device_id")
    if device_id is None or (isinstance(device_id, str) and not device_id.strip()):
        raise ValidationError("device_id is required")
    if not isinstance(device_id, str):
        raise ValidationError("device_id must be a string")

    raw_data = payload.get("raw_data")
    if raw_data is not None and not isinstance(raw_data, Mapping):
        raise ValidationError("raw_data must be an object")

    raw: Dict[str, Any] = dict(raw_data or {})
    for key, value in payload.items():
        if key not in _KNOWN_KEYS:
            raw.setdefault(key, value)

    return ReadingIn(
        device_id=device_id.strip(),
        raw_data=raw or None,
        **{name: _number(name, payload.get(name)) for name in NUMERIC_FIELDS},
    )


class IngestionPipeline:
    """
    The unit of work for one inbound reading.

    Steps run in a fixed order: validate, ensure device, store reading, evaluate
    rules, store alerts, publish. Rules are only evaluated once the reading is
    committed, so a cancelled call cannot leave alerts without their reading.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        readings: ReadingStore,
        alerts: AlertStore,
        notifier: ChangeNotifier,
    ):
        self._registry = registry
        self._readings = readings
        self._alerts = alerts
        self._notifier = notifier

    # PUBLIC_INTERFACE
    async def ingest(self, payload: Any) -> IngestResult:
        """Ingest one raw payload. Raises ValidationError or PipelineError."""
        reading_in = parse_payload(payload)
        device_id = reading_in.device_id

        try:
            await _run_in_thread(self._registry.ensure_device, device_id)
        except TelemetryError as exc:
            raise PipelineError(f"could not register device {device_id}: {exc}", cause=exc) from exc

        try:
            stored = await _run_in_thread(self._readings.append, reading_in)
        except TelemetryError as exc:
            raise PipelineError(f"could not store reading for device {device_id}: {exc}", cause=exc) from exc

        result = IngestResult(reading=stored)

        drafts = alert_rules.evaluate(stored)
        if drafts:
            try:
                result.alerts = await _run_in_thread(self._alerts.append, drafts)
            except TelemetryError as exc:
                # Reading stays committed; the caller sees the partial failure.
                logger.exception(
                    "Alert persistence failed for reading id=%s device_id=%s (%d draft(s))",
                    stored.id,
                    device_id,
                    len(drafts),
                )
                result.alerts_error = f"failed to store {len(drafts)} alert(s): {exc}"

        self._publish(result)

        logger.info(
            "Ingested reading id=%s device_id=%s alerts_created=%d partial=%s",
            stored.id,
            device_id,
            result.alerts_created,
            result.partial,
        )
        return result

    def _publish(self, result: IngestResult) -> None:
        try:
            self._notifier.publish_reading(result.reading)
            for alert in result.alerts:
                self._notifier.publish_alert(alert)
        except Exception:
            logger.exception("Change notification failed for reading id=%s", result.reading.id)
