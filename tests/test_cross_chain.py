"""End-to-end tests for two domains linked by an in-memory bridge network."""

import pytest

from conftest import ALICE
from meluri.chain import NATIVE_ASSET, ManualClock
from meluri.config import RouterConfig, Settings
from meluri.deployment import bootstrap_simulated, link_domains
from meluri.errors import InsufficientBalance, InsufficientFee, UnsupportedChain
from meluri.router import BridgeNetwork

COST = 10**15


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def network() -> BridgeNetwork:
    return BridgeNetwork("loopback")


def _domains(network, clock, scheme="timestamp"):
    router_config = RouterConfig(message_id_scheme=scheme)
    source = bootstrap_simulated(Settings(chain_id=1, router=router_config), network=network, clock=clock)
    destination = bootstrap_simulated(Settings(chain_id=2, router=router_config), network=network, clock=clock)
    link_domains(source, destination, network="loopback", estimated_cost=COST, estimated_time_seconds=600, security_score=80)
    destination.fund(ALICE, 10_000)
    destination.vault.deposit(destination.vault.asset, 10_000, sender=ALICE)
    return source, destination


@pytest.fixture
def domains(network, clock):
    return _domains(network, clock)


class TestCrossChainRoute:
    """Tests for routing through a bridge endpoint and relaying to the destination."""

    def test_route_forwards_fee_and_queues_envelope(self, domains, network) -> None:
        source, destination = domains
        endpoint = source.bridges["loopback"]
        strategy = destination.strategies["lending"].address
        native_before = source.env.balances.balance_of(NATIVE_ASSET, source.admin)

        intent = source.router.route(1, 2, strategy, 4_000, fee=COST + 5, sender=source.admin)

        assert intent.cross_chain is True
        assert intent.bridge == endpoint.address
        assert intent.fee == COST + 5
        assert intent.transfer_id == endpoint.outbox[0].transfer_id
        assert source.env.balances.balance_of(NATIVE_ASSET, source.admin) == native_before - COST - 5
        assert source.env.balances.balance_of(NATIVE_ASSET, endpoint.address) == COST + 5
        assert source.env.balances.balance_of(NATIVE_ASSET, source.router.address) == 0
        assert network.pending() == 1

        event = source.audit.get_events(event_type="routing_intent")[0]
        assert event.context["transfer_id"] == intent.transfer_id
        assert event.context["fee"] == COST + 5

    def test_delivery_allocates_on_destination(self, domains, network) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        source.router.route(1, 2, strategy, 4_000, fee=COST, sender=source.admin)

        results = network.deliver()

        assert len(results) == 1
        assert results[0].delivered is True
        assert destination.router.is_processed(results[0].message_id)
        assert destination.vault.allocation(strategy) == 4_000
        assert destination.vault.idle_balance() == 6_000
        assert network.pending() == 0

    def test_fee_below_cost(self, domains, network) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        with pytest.raises(InsufficientFee):
            source.router.route(1, 2, strategy, 4_000, fee=COST - 1, sender=source.admin)
        assert network.pending() == 0

    def test_reverted_route_leaves_outbox_empty(self, domains, network) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        balance = source.env.balances.balance_of(NATIVE_ASSET, source.admin)
        events_before = len(source.audit.events)

        with pytest.raises(InsufficientBalance):
            source.router.route(1, 2, strategy, 4_000, fee=balance + 1, sender=source.admin)

        assert network.pending() == 0
        assert len(source.audit.events) == events_before

    def test_unknown_destination(self, domains) -> None:
        source, destination = domains
        source.router.add_quote(1, 9, source.router.quotes(1, 2)[0], sender=source.admin)
        with pytest.raises(UnsupportedChain):
            source.router.route(1, 9, destination.strategies["lending"].address, 1, fee=COST, sender=source.admin)


class TestDelivery:
    """Tests for best-effort delivery and inbound dedup over the network."""

    def test_failed_delivery_is_reported_and_dropped(self, domains, network) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        source.router.route(1, 2, strategy, 50_000, fee=COST, sender=source.admin)

        results = network.deliver()

        assert results[0].delivered is False
        assert "Insufficient" in results[0].error
        assert destination.router.processed_count == 0
        assert destination.vault.allocation(strategy) == 0
        assert network.pending() == 0
        failed = network.audit.get_events(event_type="delivery_failed")
        assert failed[0].context["transfer_id"] == results[0].envelope.transfer_id

    def test_identical_routes_in_one_second_collide(self, domains, network) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)

        results = network.deliver()

        assert [r.delivered for r in results] == [True, False]
        assert "already processed" in results[1].error
        assert destination.vault.allocation(strategy) == 1_000

    def test_identical_routes_in_later_seconds(self, domains, network, clock) -> None:
        source, destination = domains
        strategy = destination.strategies["lending"].address
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)
        network.deliver()
        clock.advance(1)
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)
        network.deliver()

        assert destination.vault.allocation(strategy) == 2_000

    def test_sequence_ids_keep_identical_routes_apart(self, network, clock) -> None:
        source, destination = _domains(network, clock, scheme="sequence")
        strategy = destination.strategies["tokenized"].address
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)
        source.router.route(1, 2, strategy, 1_000, fee=COST, sender=source.admin)

        results = network.deliver()

        assert [r.delivered for r in results] == [True, True]
        assert [r.envelope.sequence for r in results] == [1, 2]
        assert destination.vault.allocation(strategy) == 2_000
