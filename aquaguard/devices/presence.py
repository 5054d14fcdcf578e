"""Periodic presence sweep marking silent devices offline."""

import logging
from datetime import datetime, timedelta, timezone

from aquaguard.devices.repository import DeviceRepository
from aquaguard.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


async def check_offline_devices(
    repository: DeviceRepository,
    interval_minutes: int = 5,
    now: datetime | None = None,
) -> list[str]:
    """Mark devices offline when silent for twice the check interval.

    Args:
        repository: Device repository.
        interval_minutes: How often the sweep runs.
        now: Reference time (defaults to current UTC time).

    Returns:
        IDs of devices that were marked offline.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=2 * interval_minutes)

    device_ids = await repository.mark_stale_offline(cutoff, now)

    if device_ids:
        get_metrics().device_status_writes.labels(status="offline").inc(len(device_ids))
        logger.info(
            "Marked %d device(s) offline (silent since %s): %s",
            len(device_ids), cutoff.isoformat(), device_ids,
        )
    else:
        logger.debug("Offline sweep found no stale devices")
    return device_ids
