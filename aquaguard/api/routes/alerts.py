"""Alert endpoints for listing alerts and moving them through their lifecycle."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from aquaguard.alerts.repository import AlertRepository
from aquaguard.alerts.schemas import VALID_SEVERITIES, VALID_STATUSES
from aquaguard.api.dependencies import get_alert_repository
from aquaguard.api.models import AlertItem, AlertsResponse, AlertTransitionRequest, ErrorResponse
from aquaguard.ingestion.schemas import VALID_PARAMETERS
from aquaguard.resilience.errors import InvalidTransitionError

logger = structlog.get_logger(__name__)
router = APIRouter()


def _check_choice(name: str, value: str | None, valid: frozenset[str]) -> None:
    if value is not None and value not in valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {name} {value!r}. Must be one of: {sorted(valid)}",
        )


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid filter parameter"}},
    summary="List alerts",
    description="List alerts with optional filters, most recent first.",
)
async def list_alerts(
    status_filter: str | None = Query(
        default=None,
        alias="status",
        description="Filter by status: Active, Acknowledged, Resolved",
    ),
    severity: str | None = Query(
        default=None,
        description="Filter by severity: Advisory, Warning, Critical",
    ),
    device_id: str | None = Query(default=None, description="Filter by device"),
    parameter: str | None = Query(default=None, description="Filter by tds, ph or turbidity"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum alerts to return"),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
    alert_repo: AlertRepository = Depends(get_alert_repository),
) -> AlertsResponse:
    start_time = time.perf_counter()

    _check_choice("status", status_filter, VALID_STATUSES)
    _check_choice("severity", severity, VALID_SEVERITIES)
    _check_choice("parameter", parameter, VALID_PARAMETERS)

    alerts = await alert_repo.get_recent(
        status=status_filter,
        severity=severity,
        device_id=device_id,
        parameter=parameter,
        limit=limit,
        offset=offset,
    )
    items = [AlertItem.from_alert(a) for a in alerts]
    latency_ms = (time.perf_counter() - start_time) * 1000

    logger.info("Alerts listed", total=len(items), latency_ms=round(latency_ms, 2))
    return AlertsResponse(alerts=items, total=len(items), latency_ms=round(latency_ms, 2))


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertItem,
    responses={
        404: {"model": ErrorResponse, "description": "Alert not found"},
        409: {"model": ErrorResponse, "description": "Alert is not Active"},
    },
    summary="Acknowledge an alert",
)
async def acknowledge_alert(
    alert_id: str,
    request: AlertTransitionRequest,
    alert_repo: AlertRepository = Depends(get_alert_repository),
) -> AlertItem:
    try:
        alert = await alert_repo.acknowledge(alert_id, request.user_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if alert is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert {alert_id} not found",
        )

    logger.info("Alert acknowledged", alert_id=alert_id, user_id=request.user_id)
    return AlertItem.from_alert(alert)


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertItem,
    responses={
        404: {"model": ErrorResponse, "description": "Alert not found"},
        409: {"model": ErrorResponse, "description": "Alert is already resolved"},
    },
    summary="Resolve an alert",
)
async def resolve_alert(
    alert_id: str,
    request: AlertTransitionRequest,
    alert_repo: AlertRepository = Depends(get_alert_repository),
) -> AlertItem:
    try:
        alert = await alert_repo.resolve(alert_id, request.user_id, request.notes)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if alert is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert {alert_id} not found",
        )

    logger.info("Alert resolved", alert_id=alert_id, user_id=request.user_id)
    return AlertItem.from_alert(alert)
