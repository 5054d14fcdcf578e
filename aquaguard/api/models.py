"""
Pydantic request and response models for the API.
"""

from typing import Any

from pydantic import BaseModel, Field

from aquaguard.alerts.schemas import Alert


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str = Field(..., description="Error message")


class ComponentHealth(BaseModel):
    """Health of a single infrastructure component."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency")
    details: dict[str, Any] = Field(default_factory=dict)


class QueueMetrics(BaseModel):
    """Backlog figures for a stream."""

    length: int = Field(..., description="Entries in the stream (-1 if unknown)")
    pending: int = Field(..., description="Delivered but unacknowledged (-1 if unknown)")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    queues: dict[str, QueueMetrics] = Field(default_factory=dict)
    version: str = Field(..., description="Service version")


class AlertItem(BaseModel):
    """Single alert record."""

    alert_id: str = Field(..., description="Unique alert identifier")
    device_id: str
    device_name: str
    building: str | None = None
    floor: str | None = None
    parameter: str = Field(..., description="tds, ph or turbidity")
    alert_type: str = Field(..., description="threshold or trend")
    severity: str = Field(..., description="Advisory, Warning or Critical")
    status: str = Field(..., description="Active, Acknowledged or Resolved")
    value: float
    threshold_value: float | None = None
    trend_direction: str | None = None
    previous_value: float | None = None
    change_rate: float | None = None
    message: str
    recommended_action: str
    notified_recipients: list[str] = Field(default_factory=list)
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
    acknowledged_at: str | None = None
    acknowledged_by: str | None = None
    resolved_at: str | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertItem":
        def iso(value):
            return value.isoformat() if value is not None else None

        return cls(
            alert_id=alert.alert_id,
            device_id=alert.device_id,
            device_name=alert.device_name,
            building=alert.building,
            floor=alert.floor,
            parameter=alert.parameter,
            alert_type=alert.alert_type,
            severity=alert.severity,
            status=alert.status,
            value=alert.value,
            threshold_value=alert.threshold_value,
            trend_direction=alert.trend_direction,
            previous_value=alert.previous_value,
            change_rate=alert.change_rate,
            message=alert.message,
            recommended_action=alert.recommended_action,
            notified_recipients=list(alert.notified_recipients),
            created_at=alert.created_at.isoformat(),
            acknowledged_at=iso(alert.acknowledged_at),
            acknowledged_by=alert.acknowledged_by,
            resolved_at=iso(alert.resolved_at),
            resolved_by=alert.resolved_by,
            resolution_notes=alert.resolution_notes,
        )


class AlertsResponse(BaseModel):
    """Response model for listing alerts."""

    alerts: list[AlertItem] = Field(..., description="List of alerts")
    total: int = Field(..., description="Number of alerts returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertTransitionRequest(BaseModel):
    """Request body for acknowledging or resolving an alert."""

    user_id: str = Field(..., min_length=1, max_length=128, description="Acting user")
    notes: str | None = Field(
        default=None,
        max_length=2000,
        description="Resolution notes (resolve only)",
    )


class DigestAcknowledgeResponse(BaseModel):
    """Response model for digest acknowledgement."""

    digest_id: str
    outcome: str = Field(..., description="acknowledged or already_acknowledged")
    message: str
