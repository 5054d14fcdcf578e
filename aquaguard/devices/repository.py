"""Device repository for registry reads and presence updates."""

import logging
from datetime import datetime
from typing import Any

from aquaguard.devices.schemas import DeviceFact, DeviceLocation
from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)


class DeviceRepository:
    """Reads device facts and writes the presence columns of ``devices``.

    Never creates or deletes device rows.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_device(self, device_id: str) -> DeviceFact | None:
        """Get a device by ID, or None if it is not in the registry."""
        sql = "SELECT * FROM devices WHERE device_id = $1"
        row = await self._db.fetchrow(sql, device_id)
        if row is None:
            return None
        return _row_to_device(row)

    async def touch_online(
        self,
        device_id: str,
        now: datetime,
        throttle_cutoff: datetime,
    ) -> bool:
        """Mark a device online unless it was seen after ``throttle_cutoff``.

        The condition lives in the UPDATE so concurrent invocations for
        the same device produce at most one write per throttle window.

        Returns:
            True if a write happened.
        """
        sql = """
            UPDATE devices
            SET status = 'online', last_seen = $2, offline_since = NULL
            WHERE device_id = $1
              AND (last_seen IS NULL OR last_seen <= $3)
            RETURNING device_id
        """
        result = await self._db.fetchval(sql, device_id, now, throttle_cutoff)
        return result is not None

    async def mark_stale_offline(self, cutoff: datetime, now: datetime) -> list[str]:
        """Mark online devices not seen since ``cutoff`` as offline.

        Returns:
            IDs of the devices that went offline.
        """
        sql = """
            UPDATE devices
            SET status = 'offline', offline_since = $2
            WHERE status = 'online'
              AND (last_seen IS NULL OR last_seen < $1)
            RETURNING device_id
        """
        rows = await self._db.fetch(sql, cutoff, now)
        return [row["device_id"] for row in rows]


def _row_to_device(row: Any) -> DeviceFact:
    """Convert an asyncpg Record to a DeviceFact."""
    return DeviceFact(
        device_id=row["device_id"],
        display_name=row.get("display_name"),
        location=DeviceLocation(
            building=row.get("building"),
            floor=row.get("floor"),
        ),
        status=row.get("status") or "offline",
        last_seen=row.get("last_seen"),
        offline_since=row.get("offline_since"),
    )
