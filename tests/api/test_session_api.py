"""
Tests for the /session endpoints.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_twap_service, get_wallet
from app.main import app

USER_ADDRESS = "0x" + "ab" * 32
OTHER_ADDRESS = "0x" + "cd" * 32
EXECUTOR_ADDRESS = "0x" + "12" * 32
DEPOSIT_TX = "0x" + "ef" * 32


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def wallet():
    wallet = MagicMock()
    wallet.is_configured.return_value = True
    wallet.address = EXECUTOR_ADDRESS
    return wallet


@pytest.fixture
def client(service, wallet):
    app.dependency_overrides[get_twap_service] = lambda: service
    app.dependency_overrides[get_wallet] = lambda: wallet
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, **overrides):
    payload = {
        "userAddress": USER_ADDRESS,
        "totalAmount": 5,
        "numTrades": 5,
        "intervalMinutes": 1,
        "slippageBps": 100,
    }
    payload.update(overrides)
    return client.post("/session", json=payload)


def _confirm(client, session_id, user=USER_ADDRESS, tx_hash=DEPOSIT_TX, **extra):
    body = {"sessionId": session_id, "action": "confirm_deposit", "txHash": tx_hash, "userAddress": user}
    body.update(extra)
    return client.patch("/session", json=body)


# =============================================================================
# POST /session
# =============================================================================


class TestCreate:

    def test_creates_session(self, client):
        resp = _create(client)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["executorAddress"] == EXECUTOR_ADDRESS
        assert data["session"]["amountPerTrade"] == 1.0
        assert data["session"]["status"] == "awaiting_deposit"
        assert data["instructions"] == f"Send 5 USDC to {EXECUTOR_ADDRESS} to start your TWAP"
        assert "existing" not in data

    def test_returns_existing_session(self, client):
        first = _create(client).json()

        resp = _create(client, totalAmount=50)

        data = resp.json()
        assert resp.status_code == 200
        assert data["existing"] is True
        assert data["session"]["id"] == first["session"]["id"]
        assert data["instructions"].startswith("You have an existing session. Send 5 USDC")

    def test_validation_error(self, client):
        resp = _create(client, totalAmount=0.5)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Total amount must be between 1 and 100000 USDC"

    def test_interval_too_long(self, client):
        resp = _create(client, numTrades=1000, intervalMinutes=10**15)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Interval must be at most 525600 minutes"

    def test_missing_fields(self, client):
        resp = client.post("/session", json={"userAddress": USER_ADDRESS})

        assert resp.status_code == 400
        assert resp.json()["detail"].startswith("Missing required fields")

    def test_executor_unavailable(self, client, wallet):
        wallet.is_configured.return_value = False

        resp = _create(client)

        assert resp.status_code == 503


# =============================================================================
# GET /session
# =============================================================================


class TestRead:

    def test_by_id(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = client.get("/session", params={"id": session_id})

        assert resp.status_code == 200
        assert resp.json()["session"]["id"] == session_id

    def test_by_id_missing(self, client):
        assert client.get("/session", params={"id": "missing"}).status_code == 404

    def test_by_user(self, client):
        _create(client)

        resp = client.get("/session", params={"userAddress": USER_ADDRESS})

        assert len(resp.json()["sessions"]) == 1

    def test_by_user_invalid(self, client):
        assert client.get("/session", params={"userAddress": "bob"}).status_code == 400

    def test_executor_info(self, client):
        resp = client.get("/session", params={"executor": "true"})
        assert resp.json() == {"configured": True, "address": EXECUTOR_ADDRESS}

    def test_no_parameters(self, client):
        resp = client.get("/session")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "userAddress or id parameter required"


# =============================================================================
# PATCH /session
# =============================================================================


class TestUpdate:

    def test_confirm_deposit(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = _confirm(client, session_id, amount=5)

        assert resp.status_code == 200
        session = resp.json()["session"]
        assert session["status"] == "active"
        assert session["depositConfirmed"] is True
        assert session["nextTradeAt"] is not None

    def test_confirm_wrong_owner(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = _confirm(client, session_id, user=OTHER_ADDRESS)

        assert resp.status_code == 403
        assert resp.json()["detail"] == "Unauthorized"

    def test_confirm_requires_user(self, client):
        session_id = _create(client).json()["session"]["id"]
        resp = client.patch(
            "/session", json={"sessionId": session_id, "action": "confirm_deposit", "txHash": DEPOSIT_TX}
        )
        assert resp.status_code == 400

    def test_confirm_bad_hash(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = _confirm(client, session_id, tx_hash="0x1234")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid transaction hash format"

    def test_confirm_twice(self, client):
        session_id = _create(client).json()["session"]["id"]
        _confirm(client, session_id)

        resp = _confirm(client, session_id)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Session is not awaiting deposit"

    def test_pause_and_resume(self, client):
        session_id = _create(client).json()["session"]["id"]
        _confirm(client, session_id)

        paused = client.patch(
            "/session", json={"sessionId": session_id, "action": "pause", "userAddress": USER_ADDRESS}
        )
        resumed = client.patch(
            "/session", json={"sessionId": session_id, "action": "resume", "userAddress": USER_ADDRESS}
        )

        assert paused.json()["session"]["status"] == "paused"
        assert resumed.json()["session"]["status"] == "active"

    def test_pause_requires_active(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = client.patch(
            "/session", json={"sessionId": session_id, "action": "pause", "userAddress": USER_ADDRESS}
        )

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Can only pause active sessions"

    def test_invalid_action(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = client.patch(
            "/session", json={"sessionId": session_id, "action": "explode", "userAddress": USER_ADDRESS}
        )

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid action"

    def test_unknown_session(self, client):
        resp = _confirm(client, "missing")
        assert resp.status_code == 404


# =============================================================================
# DELETE /session
# =============================================================================


class TestCancel:

    def test_cancel(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = client.delete("/session", params={"id": session_id, "userAddress": USER_ADDRESS})

        assert resp.json() == {"success": True, "message": "Session cancelled"}
        session = client.get("/session", params={"id": session_id}).json()["session"]
        assert session["status"] == "cancelled"

    def test_cancel_wrong_owner(self, client):
        session_id = _create(client).json()["session"]["id"]

        resp = client.delete("/session", params={"id": session_id, "userAddress": OTHER_ADDRESS})

        assert resp.status_code == 403

    def test_cancel_missing(self, client):
        resp = client.delete("/session", params={"id": "missing", "userAddress": USER_ADDRESS})
        assert resp.status_code == 404

    def test_cancel_requires_id(self, client):
        assert client.delete("/session").status_code == 400
