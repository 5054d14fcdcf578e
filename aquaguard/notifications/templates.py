"""Plain-text rendering for real-time alert emails."""

from aquaguard.alerts.content import SHORT_PARAMETER_NAMES, format_value
from aquaguard.alerts.schemas import Alert


def render_alert_email(alert: Alert) -> tuple[str, str]:
    """Return ``(subject, body)`` for an alert notification."""
    name = SHORT_PARAMETER_NAMES.get(alert.parameter, alert.parameter)
    kind = "trend" if alert.alert_type == "trend" else "threshold"
    subject = f"[{alert.severity}] {name} {kind} alert: {alert.device_name}"

    lines = [
        alert.message,
        "",
        f"Device: {alert.device_name} ({alert.device_id})",
    ]
    if alert.location_label:
        lines.append(f"Location: {alert.location_label}")
    lines.append(f"Value: {format_value(alert.parameter, alert.value)}")
    if alert.threshold_value is not None:
        lines.append(f"Threshold: {format_value(alert.parameter, alert.threshold_value)}")
    if alert.alert_type == "trend" and alert.previous_value is not None:
        lines.append(
            f"Trend: {alert.trend_direction} {alert.change_rate or 0:.1f}% "
            f"from {format_value(alert.parameter, alert.previous_value)}"
        )
    lines += [
        f"Raised: {alert.created_at.isoformat()}",
        "",
        f"Recommended action: {alert.recommended_action}",
        "",
        f"Alert ID: {alert.alert_id}",
    ]
    return subject, "\n".join(lines)
