"""Alert digests: aggregation, cooldown scheduling and acknowledgement."""

from aquaguard.digests.acknowledge import acknowledge_digest
from aquaguard.digests.aggregator import DigestAggregator
from aquaguard.digests.config import DigestConfig
from aquaguard.digests.render import render_digest
from aquaguard.digests.repository import DigestRepository
from aquaguard.digests.scheduler import DigestCycleResult, DigestScheduler
from aquaguard.digests.schemas import (
    AcknowledgeOutcome,
    AlertDigest,
    DigestItem,
    categorize,
    make_digest_id,
)

__all__ = [
    "AcknowledgeOutcome",
    "AlertDigest",
    "DigestAggregator",
    "DigestConfig",
    "DigestCycleResult",
    "DigestItem",
    "DigestRepository",
    "DigestScheduler",
    "acknowledge_digest",
    "categorize",
    "make_digest_id",
    "render_digest",
]
