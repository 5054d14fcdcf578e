"""Schema definitions for alert records.

Maps 1:1 to the ``alerts`` database table. For a given
(device_id, parameter, alert_type) at most one alert is Active at a time.

Status machine::

    Active ──► Acknowledged ──► Resolved
       └─────────────────────────▲

Resolved is terminal and nothing moves back to Active.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from aquaguard.ingestion.schemas import VALID_PARAMETERS

AlertType = Literal["threshold", "trend"]

VALID_ALERT_TYPES: frozenset[str] = frozenset({"threshold", "trend"})

AlertSeverity = Literal["Advisory", "Warning", "Critical"]

VALID_SEVERITIES: frozenset[str] = frozenset({"Advisory", "Warning", "Critical"})

AlertStatus = Literal["Active", "Acknowledged", "Resolved"]

VALID_STATUSES: frozenset[str] = frozenset({"Active", "Acknowledged", "Resolved"})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "Active": frozenset({"Acknowledged", "Resolved"}),
    "Acknowledged": frozenset({"Resolved"}),
    "Resolved": frozenset(),
}

TrendDirection = Literal["increasing", "decreasing"]


def can_transition(current: str, target: str) -> bool:
    """Whether an alert in ``current`` status may move to ``target``."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class Alert:
    """A persisted alert record from the alerts table.

    Attributes:
        device_id: Device that produced the reading.
        device_name: Display name at creation time.
        parameter: tds, ph or turbidity.
        alert_type: threshold or trend.
        severity: Advisory, Warning or Critical.
        value: Reading value that triggered the alert.
        message: Human-readable description.
        recommended_action: Suggested response.
        alert_id: UUID4 identifier.
        status: Active, Acknowledged or Resolved.
        building / floor: Device location at creation time.
        threshold_value: Band edge crossed (threshold alerts).
        trend_direction / previous_value / change_rate: Trend details.
        notified_recipients: User ids notified so far (append-only).
    """

    device_id: str
    device_name: str
    parameter: str
    alert_type: str
    severity: str
    value: float
    message: str
    recommended_action: str
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = "Active"
    building: str | None = None
    floor: str | None = None
    threshold_value: float | None = None
    trend_direction: str | None = None
    previous_value: float | None = None
    change_rate: float | None = None
    notified_recipients: list[str] = field(default_factory=list)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime | None = None
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None

    def __post_init__(self) -> None:
        if self.parameter not in VALID_PARAMETERS:
            raise ValueError(
                f"Invalid parameter {self.parameter!r}. "
                f"Must be one of: {sorted(VALID_PARAMETERS)}"
            )
        if self.alert_type not in VALID_ALERT_TYPES:
            raise ValueError(
                f"Invalid alert_type {self.alert_type!r}. "
                f"Must be one of: {sorted(VALID_ALERT_TYPES)}"
            )
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_STATUSES)}"
            )
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def dedup_key(self) -> str:
        """Identity of the one-Active-alert constraint."""
        return f"{self.device_id}:{self.parameter}:{self.alert_type}"

    @property
    def location_label(self) -> str:
        if self.building and self.floor:
            return f"{self.building}, {self.floor}"
        return self.building or ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "alert_id": self.alert_id,
            "device_id": self.device_id,
            "device_name": self.device_name,
            "building": self.building,
            "floor": self.floor,
            "parameter": self.parameter,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "status": self.status,
            "value": self.value,
            "threshold_value": self.threshold_value,
            "trend_direction": self.trend_direction,
            "previous_value": self.previous_value,
            "change_rate": self.change_rate,
            "message": self.message,
            "recommended_action": self.recommended_action,
            "notified_recipients": list(self.notified_recipients),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "acknowledged_at": iso(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "resolution_notes": self.resolution_notes,
        }


@dataclass(frozen=True)
class AlertCreateResult:
    """Outcome of ``AlertRepository.create_if_absent``.

    ``alert`` is set when a new alert was inserted. On a duplicate,
    ``existing_alert_id`` names the Active alert that blocked it when known.
    """

    alert: Alert | None = None
    existing_alert_id: str | None = None

    @property
    def created(self) -> bool:
        return self.alert is not None

    @property
    def duplicate(self) -> bool:
        return self.alert is None
