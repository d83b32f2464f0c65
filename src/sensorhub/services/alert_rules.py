from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from src.sensorhub.schemas.alerts import AlertDraft, AlertType
from src.sensorhub.schemas.common import Severity
from src.sensorhub.schemas.readings import ReadingIn


@dataclass(frozen=True)
class ThresholdRule:
    """A single-field threshold check producing at most one alert."""

    field: str
    condition: Callable[[float], bool]
    alert_type: AlertType
    severity: Severity
    template: str


# Declaration order is the output order of evaluate().
RULES: Sequence[ThresholdRule] = (
    ThresholdRule(
        field="temperature",
        condition=lambda v: v > 35,
        alert_type=AlertType.high_temperature,
        severity=Severity.warning,
        template="High temperature detected: {v}°C",
    ),
    ThresholdRule(
        field="temperature",
        condition=lambda v: v < 0,
        alert_type=AlertType.low_temperature,
        severity=Severity.warning,
        template="Low temperature detected: {v}°C",
    ),
    ThresholdRule(
        field="humidity",
        condition=lambda v: v > 80,
        alert_type=AlertType.high_humidity,
        severity=Severity.info,
        template="High humidity detected: {v}%",
    ),
    ThresholdRule(
        field="battery_level",
        condition=lambda v: v < 20,
        alert_type=AlertType.low_battery,
        severity=Severity.error,
        template="Low battery level: {v}%",
    ),
)


def _format_value(v: float) -> str:
    # 40.0 -> "40", 40.5 -> "40.5"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _field_value(reading: ReadingIn, field: str) -> Optional[float]:
    return getattr(reading, field, None)


# PUBLIC_INTERFACE
def evaluate(reading: ReadingIn, rules: Sequence[ThresholdRule] = RULES) -> List[AlertDraft]:
    """
    Map a single reading to zero or more alert drafts.

    Pure: no history or store access. Absent fields never fire a rule. Several
    rules may fire for one reading; drafts come back in rule declaration order.
    """
    drafts: List[AlertDraft] = []
    for rule in rules:
        value = _field_value(reading, rule.field)
        if value is None:
            continue
        if not rule.condition(value):
            continue
        drafts.append(
            AlertDraft(
                device_id=reading.device_id,
                alert_type=rule.alert_type,
                severity=rule.severity,
                message=rule.template.format(v=_format_value(value)),
            )
        )
    return drafts
