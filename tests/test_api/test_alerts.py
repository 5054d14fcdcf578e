"""Tests for alert REST API endpoints."""

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from aquaguard.alerts.repository import AlertRepository
from aquaguard.api.app import create_app
from aquaguard.api.dependencies import get_alert_repository
from aquaguard.resilience.errors import InvalidTransitionError


@pytest.fixture
def mock_alert_repo():
    """Mock AlertRepository."""
    repo = AsyncMock(spec=AlertRepository)
    repo.get_recent = AsyncMock(return_value=[])
    repo.acknowledge = AsyncMock(return_value=None)
    repo.resolve = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def client(mock_alert_repo):
    """FastAPI TestClient with dependency overrides for alerts."""
    app = create_app()
    app.dependency_overrides[get_alert_repository] = lambda: mock_alert_repo

    with TestClient(app) as c:
        yield c


# ── GET /alerts ─────────────────────────────────────────


class TestListAlerts:
    """Listing with filters."""

    def test_empty(self, client):
        response = client.get("/alerts")

        assert response.status_code == 200
        data = response.json()
        assert data["alerts"] == []
        assert data["total"] == 0
        assert "latency_ms" in data

    def test_returns_alerts(self, client, mock_alert_repo, make_alert):
        alert = make_alert()
        mock_alert_repo.get_recent.return_value = [alert]

        data = client.get("/alerts").json()

        assert data["total"] == 1
        item = data["alerts"][0]
        assert item["alert_id"] == alert.alert_id
        assert item["severity"] == "Critical"
        assert item["status"] == "Active"
        assert item["created_at"] == "2026-03-01T12:00:00+00:00"
        assert item["acknowledged_at"] is None

    def test_filters_passed_through(self, client, mock_alert_repo):
        client.get(
            "/alerts",
            params={
                "status": "Active",
                "severity": "Warning",
                "device_id": "AG-001",
                "parameter": "ph",
                "limit": 10,
                "offset": 20,
            },
        )

        mock_alert_repo.get_recent.assert_awaited_once_with(
            status="Active",
            severity="Warning",
            device_id="AG-001",
            parameter="ph",
            limit=10,
            offset=20,
        )

    @pytest.mark.parametrize(
        "params",
        [{"status": "Open"}, {"severity": "High"}, {"parameter": "chlorine"}],
    )
    def test_invalid_filter(self, client, mock_alert_repo, params):
        response = client.get("/alerts", params=params)

        assert response.status_code == 422
        mock_alert_repo.get_recent.assert_not_awaited()

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, client, limit):
        assert client.get("/alerts", params={"limit": limit}).status_code == 422


# ── POST /alerts/{id}/acknowledge ───────────────────────


class TestAcknowledgeAlert:
    def test_acknowledge(self, client, mock_alert_repo, make_alert):
        acked = replace(
            make_alert(),
            status="Acknowledged",
            acknowledged_by="op-1",
            acknowledged_at=datetime(2026, 3, 1, 12, 5, tzinfo=timezone.utc),
        )
        mock_alert_repo.acknowledge.return_value = acked

        response = client.post(f"/alerts/{acked.alert_id}/acknowledge", json={"user_id": "op-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Acknowledged"
        assert data["acknowledged_by"] == "op-1"
        mock_alert_repo.acknowledge.assert_awaited_once_with(acked.alert_id, "op-1")

    def test_not_found(self, client):
        response = client.post("/alerts/missing/acknowledge", json={"user_id": "op-1"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Alert missing not found"

    def test_invalid_transition(self, client, mock_alert_repo):
        mock_alert_repo.acknowledge.side_effect = InvalidTransitionError(
            "Alert a1 cannot move from Resolved to Acknowledged"
        )

        response = client.post("/alerts/a1/acknowledge", json={"user_id": "op-1"})

        assert response.status_code == 409
        assert "Resolved" in response.json()["detail"]

    def test_user_id_required(self, client):
        assert client.post("/alerts/a1/acknowledge", json={}).status_code == 422
        assert client.post("/alerts/a1/acknowledge", json={"user_id": ""}).status_code == 422


# ── POST /alerts/{id}/resolve ───────────────────────────


class TestResolveAlert:
    def test_resolve_with_notes(self, client, mock_alert_repo, make_alert):
        resolved = replace(
            make_alert(),
            status="Resolved",
            resolved_by="op-2",
            resolution_notes="Replaced filter",
            resolved_at=datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc),
        )
        mock_alert_repo.resolve.return_value = resolved

        response = client.post(
            f"/alerts/{resolved.alert_id}/resolve",
            json={"user_id": "op-2", "notes": "Replaced filter"},
        )

        assert response.status_code == 200
        assert response.json()["resolution_notes"] == "Replaced filter"
        mock_alert_repo.resolve.assert_awaited_once_with(
            resolved.alert_id, "op-2", "Replaced filter"
        )

    def test_already_resolved(self, client, mock_alert_repo):
        mock_alert_repo.resolve.side_effect = InvalidTransitionError(
            "Alert a1 cannot move from Resolved to Resolved"
        )
        assert client.post("/alerts/a1/resolve", json={"user_id": "op-1"}).status_code == 409

    def test_not_found(self, client):
        assert client.post("/alerts/a1/resolve", json={"user_id": "op-1"}).status_code == 404


# ── Error mapping ───────────────────────────────────────


class TestStoreErrors:
    """Store failures surface as 503 or 500."""

    @pytest.fixture
    def failing_client(self, mock_alert_repo):
        app = create_app()
        app.dependency_overrides[get_alert_repository] = lambda: mock_alert_repo
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c

    def test_unavailable_store_is_503(self, failing_client, mock_alert_repo):
        mock_alert_repo.get_recent.side_effect = ConnectionError("postgres down")

        response = failing_client.get("/alerts")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error_type"] == "unavailable"

    def test_unexpected_error_is_500(self, failing_client, mock_alert_repo):
        mock_alert_repo.get_recent.side_effect = KeyError("status")

        response = failing_client.get("/alerts")

        assert response.status_code == 500
        assert response.json()["error_type"] == "internal"
