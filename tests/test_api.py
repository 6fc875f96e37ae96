"""Tests for the read-only ledger, router and audit endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api import state
from conftest import ALICE
from meluri.chain import ManualClock
from meluri.config import Settings
from meluri.deployment import bootstrap_simulated, deploy
from meluri.router import score_quote
from meluri.types import BridgeQuote


@pytest.fixture
def deployment():
    d = bootstrap_simulated(Settings(), clock=ManualClock())
    d.fund(ALICE, 1_000)
    d.vault.deposit(d.vault.asset, 1_000, sender=ALICE)
    d.vault.allocate(d.strategies["lending"].address, 400, sender=d.admin)
    state.set_deployment(d)
    yield d
    state.set_deployment(None)


@pytest.fixture
def client(deployment):
    from api.main import app

    return TestClient(app)


class TestVaultEndpoints:
    """Tests for /vault routes."""

    def test_get_vault(self, client, deployment) -> None:
        response = client.get("/vault")

        assert response.status_code == 200
        data = response.json()
        assert data["address"] == deployment.vault.address
        assert data["router"] == deployment.router.address
        assert data["total_assets"] == 1_000
        assert data["total_shares"] == 1_000
        assert data["idle_balance"] == 600
        assert data["share_price"] == 10**18
        assert data["share_price_display"] == "1"
        assert data["supported_assets"] == ["USDC"]

    def test_list_strategies(self, client, deployment) -> None:
        data = client.get("/vault/strategies").json()

        assert len(data) == 1
        assert data[0]["address"] == deployment.strategies["lending"].address
        assert data[0]["kind"] == "LendingAdapter"
        assert data[0]["allocation"] == 400
        assert data[0]["tvl"] == 400
        assert data[0]["asset"] == "USDC"

    def test_get_account(self, client) -> None:
        data = client.get(f"/vault/accounts/{ALICE}").json()
        assert data == {"account": ALICE, "shares": 1_000, "value": 1_000}

    def test_unknown_account(self, client) -> None:
        assert client.get("/vault/accounts/0xdead").status_code == 404


class TestRouterEndpoints:
    """Tests for /router routes."""

    def test_list_bridges(self, client, deployment) -> None:
        data = client.get("/router/bridges").json()

        assert data["chain_id"] == 1
        assert data["bridges"] == [deployment.bridges["loopback"].address]
        assert data["max_bridges"] == deployment.settings.router.max_bridges

    def test_list_quotes_with_scores(self, client, deployment) -> None:
        quote = BridgeQuote(
            bridge=deployment.bridges["loopback"].address,
            estimated_cost=10**16,
            estimated_time_seconds=300,
            security_score=90,
        )
        deployment.router.add_quote(1, 2, quote, sender=deployment.admin)

        data = client.get("/router/quotes", params={"src": 1, "dst": 2}).json()

        assert len(data) == 1
        assert data[0]["estimated_cost_display"] == "0.01"
        assert data[0]["score"] == score_quote(quote)

    def test_quotes_require_positive_chain_ids(self, client) -> None:
        assert client.get("/router/quotes", params={"src": 0, "dst": 2}).status_code == 422

    def test_optimal_falls_back_to_first_bridge(self, client, deployment) -> None:
        data = client.get("/router/optimal", params={"src": 1, "dst": 2}).json()
        assert data == {"src_chain": 1, "dst_chain": 2, "bridge": deployment.bridges["loopback"].address, "cost": 0}

    def test_optimal_rejects_zero_chain(self, client) -> None:
        assert client.get("/router/optimal", params={"src": 0, "dst": 2}).status_code == 400

    def test_optimal_without_bridges(self) -> None:
        from api.main import app

        state.set_deployment(deploy(Settings(), clock=ManualClock()))
        try:
            response = TestClient(app).get("/router/optimal", params={"src": 1, "dst": 2})
        finally:
            state.set_deployment(None)
        assert response.status_code == 404


class TestAuditEndpoints:
    """Tests for /audit/events."""

    def test_newest_first(self, client) -> None:
        data = client.get("/audit/events").json()
        assert data[0]["event_type"] == "allocate"
        assert data[-1]["event_type"] == "router_set"

    def test_filter_by_type(self, client, deployment) -> None:
        data = client.get("/audit/events", params={"event_type": "deposit"}).json()

        assert len(data) == 1
        assert data[0]["context"]["account"] == ALICE
        assert data[0]["context"]["contract"] == deployment.vault.address

    def test_filter_by_contract_and_limit(self, client, deployment) -> None:
        data = client.get("/audit/events", params={"contract": deployment.router.address, "limit": 1}).json()
        assert len(data) == 1
        assert data[0]["event_type"] == "bridge_added"

    def test_unknown_event_type(self, client) -> None:
        assert client.get("/audit/events", params={"event_type": "nope"}).status_code == 400

    def test_limit_bounds(self, client) -> None:
        assert client.get("/audit/events", params={"limit": 0}).status_code == 422
