"""Notification preference storage and recipient eligibility rules."""

import logging
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from aquaguard.alerts.schemas import Alert
from aquaguard.notifications.schemas import NotificationPreference, parse_hour
from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)


def in_quiet_hours(
    preference: NotificationPreference,
    now: datetime,
    tz: ZoneInfo | None = None,
    overnight: bool = False,
) -> bool:
    """Whether ``now`` falls in the recipient's quiet hours.

    Whole hours are compared: the window is ``start <= hour < end``.
    A window with start after end matches nothing unless ``overnight``
    is set, in which case it wraps past midnight.
    """
    if not preference.quiet_hours_enabled:
        return False
    if not preference.quiet_hours_start or not preference.quiet_hours_end:
        return False

    start = parse_hour(preference.quiet_hours_start)
    end = parse_hour(preference.quiet_hours_end)
    hour = now.astimezone(tz).hour if tz is not None else now.hour

    if start <= end:
        return start <= hour < end
    if overnight:
        return hour >= start or hour < end
    return False


def is_eligible(
    preference: NotificationPreference,
    alert: Alert,
    now: datetime,
    tz: ZoneInfo | None = None,
    overnight: bool = False,
) -> bool:
    """Apply a recipient's filters to an alert."""
    if not preference.notifications_enabled or not preference.email:
        return False
    if alert.severity not in preference.alert_severities:
        return False
    if preference.parameters and alert.parameter not in preference.parameters:
        return False
    if preference.devices and alert.device_id not in preference.devices:
        return False
    return not in_quiet_hours(preference, now, tz, overnight)


class PreferenceRepository:
    """Repository for the ``notification_preferences`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_enabled(self) -> list[NotificationPreference]:
        """Preferences with notifications enabled and an email address."""
        rows = await self._db.fetch(
            """
            SELECT * FROM notification_preferences
            WHERE notifications_enabled = TRUE AND email <> ''
            ORDER BY user_id
            """
        )
        preferences = []
        for row in rows:
            try:
                preferences.append(_row_to_preference(row))
            except ValueError as e:
                logger.warning("Skipping invalid preference %s: %s", row["user_id"], e)
        return preferences


def _row_to_preference(row: Any) -> NotificationPreference:
    """Convert an asyncpg Record to a NotificationPreference."""
    severities = row.get("alert_severities")
    return NotificationPreference(
        user_id=row["user_id"],
        email=row["email"],
        notifications_enabled=row.get("notifications_enabled", True),
        alert_severities=list(severities) if severities else ["Critical", "Warning", "Advisory"],
        parameters=list(row.get("parameters") or []),
        devices=list(row.get("devices") or []),
        quiet_hours_enabled=bool(row.get("quiet_hours_enabled")),
        quiet_hours_start=row.get("quiet_hours_start"),
        quiet_hours_end=row.get("quiet_hours_end"),
    )
