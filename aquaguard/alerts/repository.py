"""Alert repository with transactional deduplication.

``create_if_absent`` is the only path that inserts alerts. It serializes
writers for the same (device_id, parameter, alert_type) with a
transaction-scoped advisory lock, then checks for an Active alert before
inserting. The partial unique index ``uq_alerts_one_active`` backs the
same rule at the storage level.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import asyncpg

from aquaguard.alerts.schemas import Alert, AlertCreateResult, can_transition
from aquaguard.resilience.errors import InvalidTransitionError
from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)


class AlertRepository:
    """Repository for alert persistence, status transitions and queries."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_if_absent(self, alert: Alert) -> AlertCreateResult:
        """Insert ``alert`` unless an Active alert with the same key exists.

        Args:
            alert: Fully built alert (status Active, empty notified set).

        Returns:
            AlertCreateResult with the stored alert, or a duplicate result.
        """
        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    "SELECT pg_advisory_xact_lock(hashtext($1))", alert.dedup_key
                )

                existing_id = await conn.fetchval(
                    """
                    SELECT alert_id FROM alerts
                    WHERE device_id = $1 AND parameter = $2
                      AND alert_type = $3 AND status = 'Active'
                    LIMIT 1
                    """,
                    alert.device_id,
                    alert.parameter,
                    alert.alert_type,
                )
                if existing_id is not None:
                    logger.debug(
                        "Active alert %s already exists for %s",
                        existing_id, alert.dedup_key,
                    )
                    return AlertCreateResult(existing_alert_id=existing_id)

                row = await conn.fetchrow(
                    """
                    INSERT INTO alerts (
                        alert_id, device_id, device_name, building, floor,
                        parameter, alert_type, severity, value,
                        threshold_value, trend_direction, previous_value,
                        change_rate, message, recommended_action, status,
                        notified_recipients, created_at, updated_at
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                        $11, $12, $13, $14, $15, 'Active', '{}', $16, $16
                    )
                    RETURNING *
                    """,
                    alert.alert_id,
                    alert.device_id,
                    alert.device_name,
                    alert.building,
                    alert.floor,
                    alert.parameter,
                    alert.alert_type,
                    alert.severity,
                    alert.value,
                    alert.threshold_value,
                    alert.trend_direction,
                    alert.previous_value,
                    alert.change_rate,
                    alert.message,
                    alert.recommended_action,
                    alert.created_at,
                )
        except asyncpg.UniqueViolationError:
            logger.info("Unique index rejected duplicate active alert %s", alert.dedup_key)
            return AlertCreateResult()

        created = _row_to_alert(row)
        logger.info(
            "Alert created: %s (%s %s %s)",
            created.alert_id, created.device_id, created.parameter, created.severity,
        )
        return AlertCreateResult(alert=created)

    async def get_by_id(self, alert_id: str) -> Alert | None:
        """Get an alert by ID, or None if not found."""
        row = await self._db.fetchrow("SELECT * FROM alerts WHERE alert_id = $1", alert_id)
        if row is None:
            return None
        return _row_to_alert(row)

    async def get_recent(
        self,
        *,
        status: str | None = None,
        severity: str | None = None,
        device_id: str | None = None,
        parameter: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """Get recent alerts with optional filtering, newest first."""
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        for column, value in (
            ("status", status),
            ("severity", severity),
            ("device_id", device_id),
            ("parameter", parameter),
        ):
            if value is not None:
                conditions.append(f"{column} = ${param_idx}")
                params.append(value)
                param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        sql = f"""
            SELECT * FROM alerts
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]

    async def get_active(self, device_id: str | None = None, limit: int = 100) -> list[Alert]:
        """Active alerts, optionally for one device, newest first."""
        return await self.get_recent(status="Active", device_id=device_id, limit=limit)

    async def acknowledge(self, alert_id: str, user_id: str) -> Alert | None:
        """Move an Active alert to Acknowledged.

        Returns:
            The updated alert, or None if the alert does not exist.

        Raises:
            InvalidTransitionError: The alert is not Active.
        """
        now = datetime.now(timezone.utc)
        row = await self._db.fetchrow(
            """
            UPDATE alerts
            SET status = 'Acknowledged', acknowledged_at = $2,
                acknowledged_by = $3, updated_at = $2
            WHERE alert_id = $1 AND status = 'Active'
            RETURNING *
            """,
            alert_id,
            now,
            user_id,
        )
        if row is not None:
            return _row_to_alert(row)
        return await self._reject_transition(alert_id, "Acknowledged")

    async def resolve(
        self,
        alert_id: str,
        user_id: str,
        notes: str | None = None,
    ) -> Alert | None:
        """Move an Active or Acknowledged alert to Resolved.

        Returns:
            The updated alert, or None if the alert does not exist.

        Raises:
            InvalidTransitionError: The alert is already Resolved.
        """
        now = datetime.now(timezone.utc)
        row = await self._db.fetchrow(
            """
            UPDATE alerts
            SET status = 'Resolved', resolved_at = $2, resolved_by = $3,
                resolution_notes = $4, updated_at = $2
            WHERE alert_id = $1 AND status IN ('Active', 'Acknowledged')
            RETURNING *
            """,
            alert_id,
            now,
            user_id,
            notes,
        )
        if row is not None:
            return _row_to_alert(row)
        return await self._reject_transition(alert_id, "Resolved")

    async def _reject_transition(self, alert_id: str, target: str) -> None:
        current = await self.get_by_id(alert_id)
        if current is None:
            return None
        if not can_transition(current.status, target):
            raise InvalidTransitionError(
                f"Alert {alert_id} cannot move from {current.status} to {target}"
            )
        # Lost a race with another writer; report the status we observed.
        raise InvalidTransitionError(
            f"Alert {alert_id} changed concurrently (now {current.status})"
        )

    async def add_notified_recipients(self, alert_id: str, user_ids: list[str]) -> None:
        """Union ``user_ids`` into the alert's notified set."""
        if not user_ids:
            return
        await self._db.execute(
            """
            UPDATE alerts
            SET notified_recipients = ARRAY(
                SELECT DISTINCT unnest(notified_recipients || $2::text[])
            )
            WHERE alert_id = $1
            """,
            alert_id,
            list(user_ids),
        )


def _row_to_alert(row: Any) -> Alert:
    """Convert an asyncpg Record to an Alert."""
    return Alert(
        alert_id=row["alert_id"],
        device_id=row["device_id"],
        device_name=row["device_name"],
        building=row.get("building"),
        floor=row.get("floor"),
        parameter=row["parameter"],
        alert_type=row["alert_type"],
        severity=row["severity"],
        value=row["value"],
        threshold_value=row.get("threshold_value"),
        trend_direction=row.get("trend_direction"),
        previous_value=row.get("previous_value"),
        change_rate=row.get("change_rate"),
        message=row["message"],
        recommended_action=row["recommended_action"],
        status=row["status"],
        notified_recipients=list(row.get("notified_recipients") or []),
        created_at=row["created_at"],
        updated_at=row.get("updated_at"),
        acknowledged_at=row.get("acknowledged_at"),
        acknowledged_by=row.get("acknowledged_by"),
        resolved_at=row.get("resolved_at"),
        resolved_by=row.get("resolved_by"),
        resolution_notes=row.get("resolution_notes"),
    )
