"""Digest acknowledgement entry point."""

import logging
from datetime import datetime, timezone

from aquaguard.digests.repository import DigestRepository
from aquaguard.digests.schemas import ACK_TOKEN_PATTERN, AcknowledgeOutcome

logger = logging.getLogger(__name__)


async def acknowledge_digest(
    repository: DigestRepository,
    digest_id: str,
    token: str | None,
    now: datetime | None = None,
) -> AcknowledgeOutcome:
    """Validate ``token`` and permanently acknowledge the digest.

    Malformed tokens are rejected before any store access.
    """
    if not digest_id or not token or not ACK_TOKEN_PATTERN.fullmatch(token):
        logger.warning("Rejected malformed acknowledgement for digest %s", digest_id)
        return AcknowledgeOutcome.INVALID_TOKEN

    outcome = await repository.acknowledge(digest_id, token, now or datetime.now(timezone.utc))
    if outcome is AcknowledgeOutcome.INVALID_TOKEN:
        logger.warning("Acknowledgement token mismatch for digest %s", digest_id)
    else:
        logger.info("Digest %s acknowledgement: %s", digest_id, outcome.value)
    return outcome
