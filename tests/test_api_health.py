"""Tests for the /system/health API endpoint."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api import state
from meluri.chain import ManualClock
from meluri.config import Settings
from meluri.deployment import bootstrap_simulated


@pytest.fixture
def client():
    """Create a test client over a fresh simulated deployment."""
    from api.main import app

    state.set_deployment(bootstrap_simulated(Settings(), clock=ManualClock()))
    yield TestClient(app)
    state.set_deployment(None)


def test_health_endpoint_all_ok(client):
    """Test /system/health endpoint when all components are healthy."""
    with patch("meluri.health.checker.HealthChecker.check_all") as mock_check_all:
        from meluri.health import HealthStatus

        mock_check_all.return_value = {
            "database": HealthStatus(status="ok", message="Connected", latency_ms=5.2),
            "ledger": HealthStatus(status="ok", message="Ledger invariants hold", details={"total_shares": 0}),
        }

        response = client.get("/system/health")

        assert response.status_code == 200
        data = response.json()

        assert data["overall"]["status"] == "ok"
        assert data["api"]["status"] == "ok"
        assert data["api"]["uptime_seconds"] >= 0
        assert data["database"]["latency_ms"] == 5.2
        assert data["ledger"]["details"] == {"total_shares": 0}


def test_health_endpoint_database_degraded(client):
    """Degraded components degrade the overall status."""
    with patch("meluri.health.checker.HealthChecker.check_all") as mock_check_all:
        from meluri.health import HealthStatus

        mock_check_all.return_value = {
            "database": HealthStatus(status="degraded", message="DATABASE_URL not configured"),
            "ledger": HealthStatus(status="ok", message="Ledger invariants hold"),
        }

        data = client.get("/system/health").json()

        assert data["overall"]["status"] == "degraded"
        assert "latency_ms" not in data["database"]


def test_health_endpoint_ledger_error(client):
    """Any error makes the overall status an error."""
    with patch("meluri.health.checker.HealthChecker.check_all") as mock_check_all:
        from meluri.health import HealthStatus

        mock_check_all.return_value = {
            "database": HealthStatus(status="degraded", message="DATABASE_URL not configured"),
            "ledger": HealthStatus(status="error", message="Share balances do not sum to total shares"),
        }

        data = client.get("/system/health").json()

        assert data["overall"]["status"] == "error"


def test_health_endpoint_real_checks(client):
    """Unpatched checks run against the installed deployment."""
    with patch.dict("os.environ", {}, clear=True):
        data = client.get("/system/health").json()

    assert data["ledger"]["status"] == "ok"
    assert data["database"]["status"] == "degraded"
