"""
Digest scheduler - periodically sends eligible digests.

Each cycle:
1. Queries unacknowledged digests whose cooldown has expired and that
   have send attempts left (oldest cooldown first, bounded batch)
2. Renders and sends each one sequentially through the outbound sender
3. On success starts a new cooldown; on failure only counts the attempt

A digest becomes ineligible for the rest of the cycle once processed.
Query failures propagate so the periodic trigger retries next time.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from aquaguard.digests.config import DigestConfig
from aquaguard.digests.render import render_digest
from aquaguard.digests.repository import DigestRepository
from aquaguard.digests.schemas import AlertDigest
from aquaguard.notifications.senders import OutboundSender
from aquaguard.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DigestCycleResult:
    """Counts for one scheduler cycle."""

    examined: int = 0
    sent: int = 0
    failed: int = 0


class DigestScheduler:
    """
    Sends eligible digests on a fixed interval.

    Usage:
        scheduler = DigestScheduler(repository, sender, base_url=settings.public_base_url)
        await scheduler.run_cycle()        # one pass
        await scheduler.run_forever()      # until stop()
    """

    def __init__(
        self,
        repository: DigestRepository,
        sender: OutboundSender,
        base_url: str,
        config: DigestConfig | None = None,
    ) -> None:
        self._repo = repository
        self._sender = sender
        self._base_url = base_url
        self._config = config or DigestConfig()
        self._stop_event = asyncio.Event()

    async def run_cycle(self, now: datetime | None = None) -> DigestCycleResult:
        """Send every eligible digest once."""
        now = now or datetime.now(timezone.utc)
        start_time = time.monotonic()

        digests = await self._repo.get_eligible(
            now, self._config.max_send_attempts, self._config.batch_size
        )

        sent = 0
        failed = 0
        for digest in digests:
            if await self._send(digest, now):
                sent += 1
            else:
                failed += 1

        latency = time.monotonic() - start_time
        get_metrics().record_digest_cycle(sent, failed, latency)
        logger.info(
            "Digest cycle complete",
            examined=len(digests),
            sent=sent,
            failed=failed,
            latency_ms=round(latency * 1000, 2),
        )
        return DigestCycleResult(examined=len(digests), sent=sent, failed=failed)

    async def _send(self, digest: AlertDigest, now: datetime) -> bool:
        max_attempts = self._config.max_send_attempts
        subject, body = render_digest(digest, self._base_url)

        try:
            delivered = await self._sender.send(digest.recipient_email, subject, body)
        except Exception as e:
            logger.warning("Digest send raised", digest_id=digest.digest_id, error=str(e))
            delivered = False

        try:
            if delivered:
                cooldown_until = now + timedelta(hours=self._config.cooldown_hours)
                await self._repo.record_sent(digest.digest_id, now, cooldown_until, max_attempts)
                logger.info(
                    "Digest sent",
                    digest_id=digest.digest_id,
                    items=len(digest.items),
                    attempt=digest.send_attempts + 1,
                )
            else:
                await self._repo.record_failed_attempt(digest.digest_id, max_attempts)
                logger.warning(
                    "Digest send failed",
                    digest_id=digest.digest_id,
                    attempt=digest.send_attempts + 1,
                    max_attempts=max_attempts,
                )
        except Exception as e:
            logger.error(
                "Failed to record digest send outcome",
                digest_id=digest.digest_id,
                delivered=delivered,
                error=str(e),
            )
        return delivered

    async def run_forever(self) -> None:
        """Run cycles every ``schedule_interval_hours`` until stopped."""
        interval = self._config.schedule_interval_hours * 3600
        logger.info("Digest scheduler started", interval_seconds=interval)

        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error("Digest cycle failed", error=str(e))

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

        logger.info("Digest scheduler stopped")

    async def stop(self) -> None:
        self._stop_event.set()
