"""Tests for the operations and health API endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api import state
from api.main import app


@pytest.fixture(autouse=True)
def reset_engine(monkeypatch):
    """Start every test with a fresh paper engine and no database."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    state.reset()
    yield
    state.reset()


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


# ========== Pre-flight Tests ==========


class TestPreflightEndpoint:
    """Tests for POST /operations/preflight."""

    def test_preflight_passes(self, client):
        response = client.post("/operations/preflight", json={"amount": 500_000})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["balance"] == 1_000_000
        assert data["fee_estimate"] == {"protocol_fee": 450, "execution_cost": 100, "total": 550}

    def test_preflight_limit_breach(self, client):
        response = client.post("/operations/preflight", json={"amount": 700_000})

        data = response.json()
        assert data["ok"] is False
        assert data["code"] == "amount_exceeds_limit"
        assert data["fee_estimate"] is None

    def test_preflight_oracle_unavailable(self, client):
        state.get_environment().feed.answer = 0

        response = client.post("/operations/preflight", json={"amount": 500_000})

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "oracle_unavailable"

    def test_preflight_requires_amount(self, client):
        response = client.post("/operations/preflight", json={})
        assert response.status_code == 422


# ========== Initiation Tests ==========


class TestInitiateEndpoint:
    """Tests for POST /operations."""

    def test_operation_completes(self, client):
        response = client.post("/operations", json={"amount": 500_000})

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["stage"] == "completed"
        assert data["operation_id"]

    def test_rejection_reported_in_body(self, client):
        response = client.post("/operations", json={"amount": 700_000})

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is False
        assert data["code"] == "amount_exceeds_limit"

    def test_abort_reported_in_body(self, client):
        state.get_environment().router.add_liquidity_fail_reason = "slippage"

        data = client.post("/operations", json={"amount": 500_000}).json()

        assert data["accepted"] is False
        assert data["code"] == "investment_failed"
        assert data["reason"] == "slippage"

    def test_in_flight_returns_409(self, client):
        env = state.get_environment()

        with env.initiator.locks.hold(env.config.scope):
            response = client.post("/operations", json={"amount": 500_000})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "operation_in_flight"


# ========== History and Audit Tests ==========


class TestHistoryEndpoints:
    """Tests for GET /operations and GET /operations/audit."""

    def test_history_requires_database(self, client):
        response = client.get("/operations")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "storage_unavailable"

    def test_history_with_database(self, client, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
        state.reset()

        client.post("/operations", json={"amount": 500_000})
        client.post("/operations", json={"amount": 700_000})
        response = client.get("/operations", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["operations"][0]["code"] == "amount_exceeds_limit"
        assert data["operations"][1]["accepted"] is True

    def test_audit_for_operation(self, client):
        operation_id = client.post("/operations", json={"amount": 500_000}).json()["operation_id"]

        response = client.get("/operations/audit", params={"operation_id": operation_id})

        assert response.status_code == 200
        events = response.json()["events"]
        assert events[0]["event_type"] == "operation_started"
        assert events[-1]["event_type"] == "operation_completed"

    def test_audit_filter_by_type(self, client):
        client.post("/operations", json={"amount": 700_000})

        data = client.get("/operations/audit", params={"event_type": "operation_rejected"}).json()

        assert data["count"] == 1
        assert data["events"][0]["context"]["code"] == "amount_exceeds_limit"


# ========== Health Tests ==========


class TestHealthEndpoint:
    """Tests for GET /system/health."""

    def test_healthy(self, client):
        response = client.get("/system/health")

        assert response.status_code == 200
        data = response.json()
        assert data["overall"]["status"] == "ok"
        assert data["oracle"]["status"] == "ok"
        assert data["scope"]["status"] == "ok"
        assert data["api"]["status"] == "ok"

    def test_oracle_error_degrades_overall(self, client):
        state.get_environment().feed.answer = -1

        data = client.get("/system/health").json()

        assert data["oracle"]["status"] == "error"
        assert data["overall"]["status"] == "error"
