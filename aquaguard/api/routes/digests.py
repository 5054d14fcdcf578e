"""Digest acknowledgement endpoint (linked from digest emails)."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from aquaguard.api.dependencies import get_digest_repository
from aquaguard.api.models import DigestAcknowledgeResponse, ErrorResponse
from aquaguard.digests.acknowledge import acknowledge_digest
from aquaguard.digests.repository import DigestRepository
from aquaguard.digests.schemas import AcknowledgeOutcome

logger = structlog.get_logger(__name__)
router = APIRouter()

_MESSAGES = {
    AcknowledgeOutcome.ACKNOWLEDGED: "Digest acknowledged. No further reminders will be sent.",
    AcknowledgeOutcome.ALREADY_ACKNOWLEDGED: "Digest was already acknowledged.",
}


@router.api_route(
    "/digests/{digest_id}/acknowledge",
    methods=["GET", "POST"],
    response_model=DigestAcknowledgeResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Invalid acknowledgement token"},
        404: {"model": ErrorResponse, "description": "Digest not found"},
    },
    summary="Acknowledge a digest",
    description=(
        "Stop further sends of a digest. The token comes from the link in "
        "the digest email. GET is accepted so the link works from mail clients."
    ),
)
async def acknowledge(
    digest_id: str,
    token: str = Query(default="", description="64 character acknowledgement token"),
    repository: DigestRepository = Depends(get_digest_repository),
) -> DigestAcknowledgeResponse:
    outcome = await acknowledge_digest(repository, digest_id, token)

    if outcome is AcknowledgeOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Digest {digest_id} not found",
        )
    if outcome is AcknowledgeOutcome.INVALID_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid acknowledgement token",
        )

    logger.info("Digest acknowledged via API", digest_id=digest_id, outcome=outcome.value)
    return DigestAcknowledgeResponse(
        digest_id=digest_id,
        outcome=outcome.value,
        message=_MESSAGES[outcome],
    )
