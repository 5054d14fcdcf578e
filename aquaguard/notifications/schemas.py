"""Schema definitions for notification preferences and delivery results."""

from dataclasses import dataclass, field

from aquaguard.alerts.schemas import VALID_SEVERITIES

DEFAULT_SEVERITIES: tuple[str, ...] = ("Critical", "Warning", "Advisory")


@dataclass
class NotificationPreference:
    """A recipient's subscription filters.

    Empty ``parameters`` / ``devices`` lists mean "all".
    Quiet hours are "HH:MM" strings.
    """

    user_id: str
    email: str
    notifications_enabled: bool = True
    alert_severities: list[str] = field(default_factory=lambda: list(DEFAULT_SEVERITIES))
    parameters: list[str] = field(default_factory=list)
    devices: list[str] = field(default_factory=list)
    quiet_hours_enabled: bool = False
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None

    def __post_init__(self) -> None:
        invalid = set(self.alert_severities) - VALID_SEVERITIES
        if invalid:
            raise ValueError(
                f"Invalid alert_severities {sorted(invalid)}. "
                f"Must be within: {sorted(VALID_SEVERITIES)}"
            )
        for name in ("quiet_hours_start", "quiet_hours_end"):
            value = getattr(self, name)
            if value is not None:
                parse_hour(value)


def parse_hour(value: str) -> int:
    """Hour component of an ``"HH:MM"`` string."""
    try:
        hour_str, minute_str = value.split(":", 1)
        hour, minute = int(hour_str), int(minute_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM") from None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hour


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of sending one alert to one recipient."""

    user_id: str
    email: str
    success: bool
    error: str | None = None
    circuit_open: bool = False
