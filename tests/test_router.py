"""Tests for the Router: bridge administration, routing, message dedup and rebalancing."""

import pytest

from conftest import ADMIN, ALICE, ASSET
from meluri.chain import NATIVE_ASSET, Environment
from meluri.config import RouterConfig
from meluri.errors import (
    CapacityExceeded,
    DuplicateMessage,
    InsufficientBalance,
    InsufficientFee,
    InvalidStrategy,
    LengthMismatch,
    MalformedPayload,
    NoBridgeAvailable,
    Unauthorized,
    UnsupportedBridge,
    UnsupportedChain,
    ZeroAddress,
    ZeroAmount,
)
from meluri.router import Router, decode_payload, encode_payload
from meluri.strategies import ProtocolFrozen
from meluri.types import ZERO_ADDRESS, BridgeChoice, BridgeQuote

BRIDGE = "0x" + "b1" * 20
BRIDGE_2 = "0x" + "b2" * 20


@pytest.fixture
def pooled(vault, funded):
    """Vault holding 1_000 base units from Alice."""
    vault.deposit(ASSET, 1_000, sender=ALICE)
    return vault


@pytest.fixture
def bridged(router):
    router.add_bridge(BRIDGE, sender=ADMIN)
    return router


def _quote(bridge: str, cost: int, seconds: int = 300, security: int = 90) -> BridgeQuote:
    return BridgeQuote(bridge=bridge, estimated_cost=cost, estimated_time_seconds=seconds, security_score=security)


# ========== Administration ==========


class TestBridgeAdministration:
    """Tests for the administrative surface of the router."""

    def test_admin_only(self, router) -> None:
        with pytest.raises(Unauthorized):
            router.add_bridge(BRIDGE, sender=ALICE)
        router.add_bridge(BRIDGE, sender=ADMIN)
        with pytest.raises(Unauthorized):
            router.remove_bridge(BRIDGE, sender=ALICE)
        with pytest.raises(Unauthorized):
            router.add_quote(1, 2, _quote(BRIDGE, 1), sender=ALICE)
        with pytest.raises(Unauthorized):
            router.clear_quotes(1, 2, sender=ALICE)

    def test_bridge_capacity_leaves_registry_untouched(self, router, audit) -> None:
        bridges = ["0x" + f"{i:02x}" * 20 for i in range(1, 5)]
        for bridge in bridges[:3]:
            router.add_bridge(bridge, sender=ADMIN)

        with pytest.raises(CapacityExceeded):
            router.add_bridge(bridges[3], sender=ADMIN)
        assert router.supported_bridges == tuple(bridges[:3])
        assert len(audit.get_events(event_type="bridge_added")) == 3

    def test_quotes_and_clearing(self, bridged, audit) -> None:
        bridged.add_quote(1, 2, _quote(BRIDGE, 10**16), sender=ADMIN)
        assert len(bridged.quotes(1, 2)) == 1
        assert audit.get_events(event_type="quote_added")[0].context["estimated_cost"] == 10**16

        assert bridged.clear_quotes(1, 2, sender=ADMIN) == 1
        assert bridged.quotes(1, 2) == ()
        assert bridged.get_optimal_bridge(1, 2) == BridgeChoice(bridge=BRIDGE, cost=0)

    def test_get_optimal_bridge(self, bridged) -> None:
        bridged.add_bridge(BRIDGE_2, sender=ADMIN)
        bridged.add_quote(1, 2, _quote(BRIDGE_2, 2 * 10**16, 180, 85), sender=ADMIN)
        bridged.add_quote(1, 2, _quote(BRIDGE, 10**16, 300, 90), sender=ADMIN)
        assert bridged.get_optimal_bridge(1, 2) == BridgeChoice(bridge=BRIDGE, cost=10**16)

    def test_router_must_share_vault_chain(self, vault) -> None:
        other = Environment(chain_id=2)
        with pytest.raises(UnsupportedChain):
            Router(other, vault=vault, admin=ADMIN)


# ========== Routing ==========


class TestRoute:
    """Tests for route()."""

    def test_validation(self, bridged, pooled, lending) -> None:
        with pytest.raises(UnsupportedChain):
            bridged.route(0, 1, lending.address, 100, sender=ADMIN)
        with pytest.raises(UnsupportedChain):
            bridged.route(1, 0, lending.address, 100, sender=ADMIN)
        with pytest.raises(ZeroAddress):
            bridged.route(1, 1, ZERO_ADDRESS, 100, sender=ADMIN)
        with pytest.raises(ZeroAmount):
            bridged.route(1, 1, lending.address, 0, sender=ADMIN)
        with pytest.raises(Unauthorized):
            bridged.route(1, 1, lending.address, 100, sender=ALICE)
        with pytest.raises(UnsupportedChain):
            bridged.route(5, 1, lending.address, 100, sender=ADMIN)

    def test_same_chain_route_allocates_locally(self, env, bridged, pooled, lending, audit) -> None:
        native_before = env.balances.balance_of(NATIVE_ASSET, ADMIN)

        intent = bridged.route(1, 1, lending.address, 300, sender=ADMIN)

        assert intent.cross_chain is False
        assert intent.bridge == BRIDGE
        assert intent.fee == 0
        assert pooled.allocation(lending.address) == 300
        assert env.balances.balance_of(NATIVE_ASSET, ADMIN) == native_before

        route_event = audit.get_events(event_type="route")[0]
        assert route_event.context == {
            "contract": bridged.address,
            "src_chain": 1,
            "dst_chain": 1,
            "strategy": lending.address,
            "amount": 300,
            "bridge": BRIDGE,
            "cross_chain": False,
        }
        assert audit.get_events(event_type="bridge_selected")[0].context["cost"] == 0
        assert audit.get_events(event_type="routing_intent") == []

    def test_fee_must_cover_quoted_cost(self, env, bridged, pooled, lending) -> None:
        bridged.add_quote(1, 1, _quote(BRIDGE, 1_000), sender=ADMIN)
        with pytest.raises(InsufficientFee):
            bridged.route(1, 1, lending.address, 100, fee=999, sender=ADMIN)

        native_before = env.balances.balance_of(NATIVE_ASSET, ADMIN)
        intent = bridged.route(1, 1, lending.address, 100, fee=1_000, sender=ADMIN)
        assert intent.fee == 0
        assert env.balances.balance_of(NATIVE_ASSET, ADMIN) == native_before

    def test_removed_bridge_with_stale_quote(self, bridged, pooled, lending) -> None:
        bridged.add_bridge(BRIDGE_2, sender=ADMIN)
        bridged.add_quote(1, 1, _quote(BRIDGE, 0), sender=ADMIN)
        bridged.remove_bridge(BRIDGE, sender=ADMIN)

        with pytest.raises(UnsupportedBridge):
            bridged.route(1, 1, lending.address, 100, sender=ADMIN)
        assert pooled.allocation(lending.address) == 0

    def test_no_bridge_available(self, router, pooled, lending) -> None:
        with pytest.raises(NoBridgeAvailable):
            router.route(1, 1, lending.address, 100, sender=ADMIN)

    def test_failed_route_records_nothing(self, bridged, pooled, lending, market, audit) -> None:
        market.frozen = True
        before = len(audit.events)
        with pytest.raises(ProtocolFrozen):
            bridged.route(1, 1, lending.address, 100, sender=ADMIN)
        assert len(audit.events) == before


# ========== Inbound messages ==========


class TestReceiveMessage:
    """Tests for idempotent inbound consumption."""

    def test_only_supported_bridges_deliver(self, bridged, pooled, lending) -> None:
        with pytest.raises(Unauthorized):
            bridged.receive_message(2, encode_payload(lending.address, 100), sender=ALICE)
        with pytest.raises(UnsupportedChain):
            bridged.receive_message(0, encode_payload(lending.address, 100), sender=BRIDGE)

    def test_message_allocates_and_replay_is_rejected(self, bridged, pooled, lending, audit) -> None:
        payload = encode_payload(lending.address, 200)

        message_id = bridged.receive_message(2, payload, sender=BRIDGE)
        assert bridged.is_processed(message_id)
        assert pooled.allocation(lending.address) == 200

        with pytest.raises(DuplicateMessage):
            bridged.receive_message(2, payload, sender=BRIDGE)
        assert pooled.allocation(lending.address) == 200
        assert bridged.processed_count == 1

        event = audit.get_events(event_type="message_received")[0]
        assert event.context["message_id"] == message_id
        assert event.context["amount"] == 200

    def test_different_payload_same_time_is_accepted(self, bridged, pooled, lending) -> None:
        bridged.receive_message(2, encode_payload(lending.address, 200), sender=BRIDGE)
        bridged.receive_message(2, encode_payload(lending.address, 201), sender=BRIDGE)
        assert pooled.allocation(lending.address) == 401

    def test_same_payload_later_is_accepted(self, clock, bridged, pooled, lending) -> None:
        payload = encode_payload(lending.address, 100)
        bridged.receive_message(2, payload, sender=BRIDGE)
        clock.advance(1)
        bridged.receive_message(2, payload, sender=BRIDGE)
        assert pooled.allocation(lending.address) == 200

    def test_same_payload_from_other_chain_is_accepted(self, bridged, pooled, lending) -> None:
        payload = encode_payload(lending.address, 100)
        bridged.receive_message(2, payload, sender=BRIDGE)
        bridged.receive_message(3, payload, sender=BRIDGE)
        assert bridged.processed_count == 2

    def test_malformed_payload_is_not_marked(self, bridged, pooled) -> None:
        for payload in (b"not json", b"[1, 2]", b'{"strategy": "0x01"}', b'{"strategy": "0x01", "amount": true}'):
            with pytest.raises(MalformedPayload):
                bridged.receive_message(2, payload, sender=BRIDGE)
        assert bridged.processed_count == 0

    def test_payload_naming_non_adapter_is_rejected_and_not_marked(self, bridged, pooled, market) -> None:
        payload = encode_payload(market.address, 100)

        with pytest.raises(InvalidStrategy):
            bridged.receive_message(2, payload, sender=BRIDGE)
        assert bridged.processed_count == 0
        assert pooled.idle_balance() == 1_000
        assert pooled.active_strategies == ()

    def test_failed_allocation_unmarks_message(self, env, bridged, vault, lending, funded) -> None:
        payload = encode_payload(lending.address, 500)
        with pytest.raises(InsufficientBalance):
            bridged.receive_message(2, payload, sender=BRIDGE)
        assert bridged.processed_count == 0

        vault.deposit(ASSET, 1_000, sender=ALICE)
        bridged.receive_message(2, payload, sender=BRIDGE)
        assert vault.allocation(lending.address) == 500

    def test_sequence_scheme_distinguishes_same_time_messages(self, env, vault, pooled, lending, audit) -> None:
        router = Router(env, vault=vault, admin=ADMIN, config=RouterConfig(message_id_scheme="sequence"), audit=audit)
        vault.set_router(router.address, sender=ADMIN)
        router.add_bridge(BRIDGE, sender=ADMIN)
        payload = encode_payload(lending.address, 100)

        router.receive_message(2, payload, sender=BRIDGE, sequence=1)
        router.receive_message(2, payload, sender=BRIDGE, sequence=2)
        with pytest.raises(DuplicateMessage):
            router.receive_message(2, payload, sender=BRIDGE, sequence=2)
        assert vault.allocation(lending.address) == 200


class TestPayloadCodec:
    def test_encoding_is_canonical(self, lending) -> None:
        payload = encode_payload(lending.address, 42)
        assert payload == ('{"amount":42,"strategy":"%s"}' % lending.address).encode()
        assert decode_payload(payload) == (lending.address, 42)

    def test_rejects_zero_strategy_and_amount(self) -> None:
        with pytest.raises(MalformedPayload):
            decode_payload(encode_payload(ZERO_ADDRESS, 1))
        with pytest.raises(MalformedPayload):
            decode_payload(b'{"amount": 0, "strategy": "0x01"}')


# ========== Rebalance ==========


class TestRebalance:
    """Tests for exit/enter orchestration through the ledger."""

    def test_length_mismatch_has_no_side_effects(self, bridged, pooled, lending, tokenized, audit) -> None:
        pooled.allocate(lending.address, 500, sender=ADMIN)
        before = len(audit.events)

        with pytest.raises(LengthMismatch):
            bridged.rebalance([lending.address], [tokenized.address, lending.address], [100], sender=ADMIN)
        with pytest.raises(LengthMismatch):
            bridged.rebalance([lending.address], [tokenized.address], [], sender=ADMIN)

        assert len(audit.events) == before
        assert pooled.allocation(lending.address) == 500
        assert pooled.allocation(tokenized.address) == 0

    def test_admin_only(self, bridged, pooled, lending, tokenized) -> None:
        with pytest.raises(Unauthorized):
            bridged.rebalance([lending.address], [tokenized.address], [1], sender=ALICE)

    def test_exits_run_before_entries(self, bridged, pooled, lending, tokenized, audit) -> None:
        pooled.allocate(lending.address, 500, sender=ADMIN)

        instructions = bridged.rebalance(
            [lending.address, lending.address, lending.address],
            [tokenized.address, tokenized.address, tokenized.address],
            [100, 0, 200],
            sender=ADMIN,
        )

        assert [i.phase for i in instructions] == ["exit", "exit", "enter", "enter"]
        assert [i.amount for i in instructions] == [100, 200, 100, 200]
        assert pooled.allocation(lending.address) == 200
        assert pooled.allocation(tokenized.address) == 300
        assert pooled.total_assets() == 1_000
        assert len(audit.get_events(event_type="rebalance_exit")) == 2
        assert len(audit.get_events(event_type="rebalance_enter")) == 2

    def test_failing_entry_reverts_exits(self, bridged, pooled, lending, tokenized, target) -> None:
        pooled.allocate(lending.address, 500, sender=ADMIN)
        target.frozen = True

        with pytest.raises(ProtocolFrozen):
            bridged.rebalance([lending.address], [tokenized.address], [300], sender=ADMIN)
        assert pooled.allocation(lending.address) == 500
        assert pooled.idle_balance() == 500


class TestSweep:
    def test_sweep(self, env, bridged) -> None:
        env.balances.mint(NATIVE_ASSET, bridged.address, 7)
        with pytest.raises(Unauthorized):
            bridged.sweep(NATIVE_ASSET, 7, ALICE, sender=ALICE)
        bridged.sweep(NATIVE_ASSET, 7, ADMIN, sender=ADMIN)
        assert env.balances.balance_of(NATIVE_ASSET, bridged.address) == 0
