"""Aggregates newly created alerts into per-recipient daily digests."""

import logging
from datetime import datetime, timezone

from aquaguard.alerts.schemas import Alert
from aquaguard.digests.config import DigestConfig
from aquaguard.digests.repository import DigestRepository
from aquaguard.digests.schemas import DigestItem, categorize, make_digest_id
from aquaguard.evaluation.schemas import ThresholdConfig
from aquaguard.notifications.schemas import NotificationPreference
from aquaguard.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class DigestAggregator:
    """Adds alerts to each recipient's digest for the alert's category and day."""

    def __init__(
        self,
        repository: DigestRepository,
        config: DigestConfig | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or DigestConfig()

    async def aggregate(
        self,
        alert: Alert,
        recipients: list[NotificationPreference],
        thresholds: ThresholdConfig,
        now: datetime | None = None,
    ) -> int:
        """Add ``alert`` to every recipient's digest. Never raises.

        Returns:
            Number of digests the alert was added to.
        """
        if not self._config.enabled or not recipients:
            return 0

        now = now or datetime.now(timezone.utc)
        category = categorize(alert.parameter, alert.value, thresholds)
        item = DigestItem.from_alert(alert)
        day = now.astimezone(timezone.utc).date()
        metrics = get_metrics()

        added = 0
        for recipient in recipients:
            digest_id = make_digest_id(recipient.user_id, category, day)
            try:
                if await self._repo.add_item(
                    digest_id,
                    recipient.user_id,
                    recipient.email,
                    category,
                    item,
                    now,
                    self._config.max_items,
                ):
                    added += 1
                    metrics.digest_items_added.labels(category=category).inc()
            except Exception as e:
                logger.error(
                    "Failed to add alert %s to digest %s: %s", alert.alert_id, digest_id, e,
                )

        logger.debug("Alert %s added to %d digest(s) (%s)", alert.alert_id, added, category)
        return added
