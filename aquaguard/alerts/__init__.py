"""Alerts: records, content, and transactional deduplicated persistence."""

from aquaguard.alerts.content import AlertContent, generate_alert_content
from aquaguard.alerts.repository import AlertRepository
from aquaguard.alerts.schemas import (
    ALLOWED_TRANSITIONS,
    VALID_ALERT_TYPES,
    VALID_SEVERITIES,
    VALID_STATUSES,
    Alert,
    AlertCreateResult,
    can_transition,
)

__all__ = [
    "Alert",
    "AlertContent",
    "AlertCreateResult",
    "AlertRepository",
    "ALLOWED_TRANSITIONS",
    "VALID_ALERT_TYPES",
    "VALID_SEVERITIES",
    "VALID_STATUSES",
    "can_transition",
    "generate_alert_content",
]
