"""Digest repository: transactional item aggregation and send bookkeeping."""

import hmac
import logging
from datetime import datetime
from typing import Any

from aquaguard.digests.schemas import (
    AcknowledgeOutcome,
    AlertDigest,
    DigestItem,
    append_item,
    items_from_json,
    items_to_json,
    new_ack_token,
)
from aquaguard.storage.database import Database

logger = logging.getLogger(__name__)


class DigestRepository:
    """Repository for the ``alert_digests`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def add_item(
        self,
        digest_id: str,
        recipient_id: str,
        recipient_email: str,
        category: str,
        item: DigestItem,
        now: datetime,
        max_items: int,
    ) -> bool:
        """Add an item to a digest, creating the digest if needed.

        Runs in one transaction: insert-if-absent, lock the row, merge the
        item (duplicates ignored, oldest dropped beyond ``max_items``).

        Returns:
            True if the item was added, False if it was already present.
        """
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO alert_digests (
                    digest_id, recipient_id, recipient_email, category,
                    items, created_at, last_updated_at, cooldown_until,
                    send_attempts, is_acknowledged, ack_token
                ) VALUES ($1, $2, $3, $4, '[]', $5, $5, $5, 0, FALSE, $6)
                ON CONFLICT (digest_id) DO NOTHING
                """,
                digest_id,
                recipient_id,
                recipient_email,
                category,
                now,
                new_ack_token(),
            )

            raw_items = await conn.fetchval(
                "SELECT items FROM alert_digests WHERE digest_id = $1 FOR UPDATE",
                digest_id,
            )

            merged = append_item(items_from_json(raw_items), item, max_items)
            if merged is None:
                return False

            await conn.execute(
                """
                UPDATE alert_digests
                SET items = $2, last_updated_at = $3
                WHERE digest_id = $1
                """,
                digest_id,
                items_to_json(merged),
                now,
            )
        return True

    async def get_by_id(self, digest_id: str) -> AlertDigest | None:
        row = await self._db.fetchrow(
            "SELECT * FROM alert_digests WHERE digest_id = $1", digest_id
        )
        if row is None:
            return None
        return _row_to_digest(row)

    async def get_eligible(
        self,
        now: datetime,
        max_attempts: int,
        limit: int,
    ) -> list[AlertDigest]:
        """Unacknowledged digests past cooldown with attempts remaining."""
        rows = await self._db.fetch(
            """
            SELECT * FROM alert_digests
            WHERE is_acknowledged = FALSE
              AND cooldown_until <= $1
              AND send_attempts < $2
            ORDER BY cooldown_until ASC
            LIMIT $3
            """,
            now,
            max_attempts,
            limit,
        )
        return [_row_to_digest(row) for row in rows]

    async def record_sent(
        self,
        digest_id: str,
        sent_at: datetime,
        cooldown_until: datetime,
        max_attempts: int,
    ) -> bool:
        """Record a successful send and start the cooldown."""
        result = await self._db.fetchval(
            """
            UPDATE alert_digests
            SET last_sent_at = $2, cooldown_until = $3,
                send_attempts = send_attempts + 1
            WHERE digest_id = $1 AND send_attempts < $4
            RETURNING digest_id
            """,
            digest_id,
            sent_at,
            cooldown_until,
            max_attempts,
        )
        return result is not None

    async def record_failed_attempt(self, digest_id: str, max_attempts: int) -> bool:
        """Count a failed send; cooldown is left unchanged."""
        result = await self._db.fetchval(
            """
            UPDATE alert_digests
            SET send_attempts = send_attempts + 1
            WHERE digest_id = $1 AND send_attempts < $2
            RETURNING digest_id
            """,
            digest_id,
            max_attempts,
        )
        return result is not None

    async def acknowledge(
        self,
        digest_id: str,
        token: str,
        now: datetime,
    ) -> AcknowledgeOutcome:
        """Acknowledge a digest if ``token`` matches its ack token."""
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                """
                SELECT ack_token, is_acknowledged, recipient_id
                FROM alert_digests WHERE digest_id = $1
                FOR UPDATE
                """,
                digest_id,
            )
            if row is None:
                return AcknowledgeOutcome.NOT_FOUND

            if not hmac.compare_digest(row["ack_token"], token):
                return AcknowledgeOutcome.INVALID_TOKEN

            if row["is_acknowledged"]:
                return AcknowledgeOutcome.ALREADY_ACKNOWLEDGED

            await conn.execute(
                """
                UPDATE alert_digests
                SET is_acknowledged = TRUE, acknowledged_at = $2,
                    acknowledged_by = $3
                WHERE digest_id = $1
                """,
                digest_id,
                now,
                row["recipient_id"],
            )
        return AcknowledgeOutcome.ACKNOWLEDGED


def _row_to_digest(row: Any) -> AlertDigest:
    """Convert an asyncpg Record to an AlertDigest."""
    return AlertDigest(
        digest_id=row["digest_id"],
        recipient_id=row["recipient_id"],
        recipient_email=row["recipient_email"],
        category=row["category"],
        ack_token=row["ack_token"],
        items=items_from_json(row.get("items")),
        created_at=row["created_at"],
        last_updated_at=row.get("last_updated_at"),
        last_sent_at=row.get("last_sent_at"),
        cooldown_until=row["cooldown_until"],
        send_attempts=row.get("send_attempts", 0),
        is_acknowledged=bool(row.get("is_acknowledged")),
        acknowledged_at=row.get("acknowledged_at"),
        acknowledged_by=row.get("acknowledged_by"),
    )
