"""Schema definitions for alert digests.

A digest batches alerts for one recipient, one category and one UTC
day. Its id is ``{recipient_id}_{category}_{YYYY-MM-DD}``.
"""

import enum
import json
import re
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from aquaguard.alerts.content import SHORT_PARAMETER_NAMES, format_value
from aquaguard.alerts.schemas import Alert
from aquaguard.evaluation.schemas import ThresholdConfig

DigestCategory = Literal[
    "ph_high",
    "ph_low",
    "tds_high",
    "tds_low",
    "turbidity_high",
    "multi_param",
]

CATEGORY_LABELS: dict[str, str] = {
    "ph_high": "pH High",
    "ph_low": "pH Low",
    "tds_high": "TDS High",
    "tds_low": "TDS Low",
    "turbidity_high": "Turbidity High",
    "multi_param": "Multiple Parameters",
}

VALID_CATEGORIES: frozenset[str] = frozenset(CATEGORY_LABELS)

ACK_TOKEN_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def new_ack_token() -> str:
    """32 random bytes as 64 lowercase hex characters."""
    return secrets.token_hex(32)


def make_digest_id(recipient_id: str, category: str, day: date) -> str:
    return f"{recipient_id}_{category}_{day.isoformat()}"


def categorize(parameter: str, value: float, config: ThresholdConfig) -> str:
    """Bucket an alert by which side of its warning band midpoint it falls."""
    if parameter == "ph":
        band = config.ph
        midpoint = ((band.warning_min or 0) + (band.warning_max or 14)) / 2
        return "ph_high" if value > midpoint else "ph_low"
    if parameter == "tds":
        band = config.tds
        midpoint = ((band.warning_min or 0) + (band.warning_max or 10000)) / 2
        return "tds_high" if value > midpoint else "tds_low"
    if parameter == "turbidity":
        return "turbidity_high"
    return "multi_param"


def summarize(alert: Alert) -> str:
    """One-line digest summary, e.g. ``"Warning: pH 8.70 at Main Lab, Floor 2"``."""
    name = SHORT_PARAMETER_NAMES.get(alert.parameter, alert.parameter)
    location = f" at {alert.location_label}" if alert.location_label else ""
    return f"{alert.severity}: {name} {format_value(alert.parameter, alert.value)}{location}"


@dataclass(frozen=True)
class DigestItem:
    """One alert inside a digest, keyed by ``event_id`` (the alert id)."""

    event_id: str
    summary: str
    timestamp: datetime
    value: float
    severity: str
    device_name: str
    parameter: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "DigestItem":
        return cls(
            event_id=alert.alert_id,
            summary=summarize(alert),
            timestamp=alert.created_at,
            value=alert.value,
            severity=alert.severity,
            device_name=alert.device_name,
            parameter=alert.parameter,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "summary": self.summary,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "severity": self.severity,
            "device_name": self.device_name,
            "parameter": self.parameter,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DigestItem":
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            event_id=data["event_id"],
            summary=data["summary"],
            timestamp=timestamp,
            value=data["value"],
            severity=data["severity"],
            device_name=data["device_name"],
            parameter=data["parameter"],
        )


def append_item(
    items: list[DigestItem],
    item: DigestItem,
    max_items: int,
) -> list[DigestItem] | None:
    """Append ``item`` keeping at most ``max_items`` (oldest dropped).

    Returns:
        The new item list, or None if the event id is already present.
    """
    if any(existing.event_id == item.event_id for existing in items):
        return None
    merged = [*items, item]
    return merged[-max_items:]


def items_to_json(items: list[DigestItem]) -> str:
    return json.dumps([i.to_dict() for i in items])


def items_from_json(raw: Any) -> list[DigestItem]:
    if raw is None:
        return []
    data = json.loads(raw) if isinstance(raw, str) else raw
    return [DigestItem.from_dict(d) for d in data]


@dataclass
class AlertDigest:
    """A persisted digest from the alert_digests table.

    Once ``is_acknowledged`` is true it never reverts. ``send_attempts``
    counts both successful and failed sends and never exceeds the
    configured maximum.
    """

    digest_id: str
    recipient_id: str
    recipient_email: str
    category: str
    ack_token: str
    items: list[DigestItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated_at: datetime | None = None
    last_sent_at: datetime | None = None
    cooldown_until: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    send_attempts: int = 0
    is_acknowledged: bool = False
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None

    def __post_init__(self) -> None:
        if self.category not in VALID_CATEGORIES:
            raise ValueError(
                f"Invalid category {self.category!r}. "
                f"Must be one of: {sorted(VALID_CATEGORIES)}"
            )

    @property
    def label(self) -> str:
        return CATEGORY_LABELS.get(self.category, self.category)

    def is_eligible(self, now: datetime, max_attempts: int) -> bool:
        return (
            not self.is_acknowledged
            and self.cooldown_until <= now
            and self.send_attempts < max_attempts
        )


class AcknowledgeOutcome(str, enum.Enum):
    """Result of a digest acknowledgement request."""

    ACKNOWLEDGED = "acknowledged"
    ALREADY_ACKNOWLEDGED = "already_acknowledged"
    INVALID_TOKEN = "invalid_token"
    NOT_FOUND = "not_found"

    @property
    def ok(self) -> bool:
        return self in (AcknowledgeOutcome.ACKNOWLEDGED, AcknowledgeOutcome.ALREADY_ACKNOWLEDGED)
