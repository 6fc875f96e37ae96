"""Cross-domain fund router.

Owns the bridge catalog and the processed-message set for one domain, selects
bridges, dispatches allocations locally through the ledger or remotely through a
bridge transport, and orchestrates ledger rebalances.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, cast

from meluri.audit import AuditLogger
from meluri.chain import NATIVE_ASSET, Administered, Environment, JournaledSet, guarded, require_address
from meluri.config import RouterConfig
from meluri.errors import (
    DuplicateMessage,
    InsufficientFee,
    InvalidAmount,
    LengthMismatch,
    Unauthorized,
    UnsupportedBridge,
    UnsupportedChain,
    ZeroAddress,
    ZeroAmount,
)
from meluri.router.catalog import BridgeCatalog
from meluri.router.messages import decode_payload, derive_message_id, encode_payload
from meluri.router.transport import BridgeTransport
from meluri.types import (
    ZERO_ADDRESS,
    Address,
    Amount,
    BridgeChoice,
    BridgeQuote,
    ChainId,
    RebalanceInstruction,
    RoutingIntent,
)
from meluri.vault import Vault

logger = logging.getLogger(__name__)


class Router(Administered):
    """Bridge selection, routing and inbound message consumption for one domain.

    The router never touches ledger accounting directly: local dispatch goes
    through ``Vault.allocate`` / ``Vault.deallocate``, which accept the router once
    the ledger administrator has registered it with ``Vault.set_router``.
    """

    _state_fields = ("_admin", "_catalog", "_processed_messages")

    def __init__(
        self,
        env: Environment,
        *,
        vault: Vault,
        admin: Address,
        config: Optional[RouterConfig] = None,
        audit: Optional[AuditLogger] = None,
        label: str = "router",
    ) -> None:
        if vault.env is not env:
            raise UnsupportedChain("router and vault must live on the same chain")
        super().__init__(env, admin=admin, label=label)
        self._vault = vault
        self._config = config or RouterConfig()
        self._audit = audit or AuditLogger()
        env.attach_journal(self._audit)
        self._catalog = BridgeCatalog(
            max_bridges=self._config.max_bridges,
            native_decimals=self._config.native_decimals,
        )
        self._processed_messages: JournaledSet[str] = self.journaled_set()

    # ========== Views ==========

    @property
    def vault(self) -> Vault:
        return self._vault

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def chain_id(self) -> ChainId:
        return self.env.chain_id

    @property
    def catalog(self) -> BridgeCatalog:
        return self._catalog

    @property
    def supported_bridges(self) -> tuple[Address, ...]:
        return self._catalog.bridges

    def quotes(self, src_chain: ChainId, dst_chain: ChainId) -> tuple[BridgeQuote, ...]:
        return self._catalog.quotes(src_chain, dst_chain)

    def is_processed(self, message_id: str) -> bool:
        return message_id in self._processed_messages

    @property
    def processed_count(self) -> int:
        return len(self._processed_messages)

    def get_optimal_bridge(self, src_chain: ChainId, dst_chain: ChainId) -> BridgeChoice:
        """Best bridge and its quoted cost for a chain pair.

        Pure function of the current catalog.

        Raises:
            NoBridgeAvailable: If the pair has no quotes and no bridge is registered
        """
        return self._catalog.optimal_bridge(src_chain, dst_chain)

    # ========== Bridge administration ==========

    @guarded
    def add_bridge(self, bridge: Address, *, sender: Address) -> None:
        self._only_admin(sender)
        self._catalog.add_bridge(bridge)
        self._audit.record("bridge_added", f"Bridge {bridge} added", contract=self.address, bridge=bridge)

    @guarded
    def remove_bridge(self, bridge: Address, *, sender: Address) -> None:
        """Unregister a bridge. Existing quotes naming it stay until cleared."""
        self._only_admin(sender)
        self._catalog.remove_bridge(bridge)
        self._audit.record("bridge_removed", f"Bridge {bridge} removed", contract=self.address, bridge=bridge)

    @guarded
    def add_quote(self, src_chain: ChainId, dst_chain: ChainId, quote: BridgeQuote, *, sender: Address) -> None:
        self._only_admin(sender)
        self._catalog.add_quote(src_chain, dst_chain, quote)
        self._audit.record(
            "quote_added",
            f"Quote for {src_chain}->{dst_chain} via {quote.bridge}",
            contract=self.address,
            src_chain=src_chain,
            dst_chain=dst_chain,
            bridge=quote.bridge,
            estimated_cost=quote.estimated_cost,
            estimated_time_seconds=quote.estimated_time_seconds,
            security_score=quote.security_score,
        )

    @guarded
    def clear_quotes(self, src_chain: ChainId, dst_chain: ChainId, *, sender: Address) -> int:
        self._only_admin(sender)
        removed = self._catalog.clear_quotes(src_chain, dst_chain)
        self._audit.record(
            "quotes_cleared",
            f"Cleared {removed} quotes for {src_chain}->{dst_chain}",
            contract=self.address,
            src_chain=src_chain,
            dst_chain=dst_chain,
            removed=removed,
        )
        return removed

    # ========== Routing ==========

    @guarded
    def route(
        self,
        src_chain: ChainId,
        dst_chain: ChainId,
        strategy: Address,
        amount: Amount,
        *,
        fee: Amount = 0,
        sender: Address,
    ) -> RoutingIntent:
        """Send ``amount`` toward ``strategy`` on ``dst_chain``.

        Same-domain routes allocate through the local ledger and consume no fee.
        Cross-domain routes take ``fee`` (native asset) from the sender and hand
        it with the encoded payload to the selected bridge.

        Raises:
            UnsupportedChain: If a chain id is zero or src_chain is not this domain
            ZeroAddress / ZeroAmount: On a null strategy or zero amount
            Unauthorized: If sender is not the administrator
            UnsupportedBridge: If the selected bridge is no longer registered
            InsufficientFee: If fee is below the quoted cost
        """
        if src_chain <= 0:
            raise UnsupportedChain("src_chain must be a non-zero chain id")
        if dst_chain <= 0:
            raise UnsupportedChain("dst_chain must be a non-zero chain id")
        if not strategy or strategy == ZERO_ADDRESS:
            raise ZeroAddress("strategy must be a non-zero address")
        if amount <= 0:
            raise ZeroAmount("amount must be positive")
        if fee < 0:
            raise InvalidAmount("fee must be >= 0")
        self._only_admin(sender)
        if src_chain != self.chain_id:
            raise UnsupportedChain(f"router on chain {self.chain_id} cannot route from {src_chain}")

        choice = self._catalog.optimal_bridge(src_chain, dst_chain)
        self._audit.record(
            "bridge_selected",
            f"Selected bridge {choice.bridge} for {src_chain}->{dst_chain} at cost {choice.cost}",
            contract=self.address,
            src_chain=src_chain,
            dst_chain=dst_chain,
            bridge=choice.bridge,
            cost=choice.cost,
        )
        if not self._catalog.is_supported(choice.bridge):
            raise UnsupportedBridge(f"bridge {choice.bridge} is not supported")
        if fee < choice.cost:
            raise InsufficientFee(f"fee {fee} is below quoted cost {choice.cost}")

        cross_chain = src_chain != dst_chain
        transfer_id: Optional[str] = None
        paid = 0
        if not cross_chain:
            self._vault.allocate(strategy, amount, sender=self.address)
        else:
            payload = encode_payload(strategy, amount)
            self.env.balances.transfer(NATIVE_ASSET, sender, self.address, fee)
            transport = cast(BridgeTransport, self.env.contract(choice.bridge))
            transfer_id = transport.send(dst_chain, payload, fee, sender=self.address)
            paid = fee
            self._audit.record(
                "routing_intent",
                f"Routing {amount} to {strategy} on chain {dst_chain} via {choice.bridge}",
                contract=self.address,
                src_chain=src_chain,
                dst_chain=dst_chain,
                strategy=strategy,
                amount=amount,
                bridge=choice.bridge,
                fee=fee,
                transfer_id=transfer_id,
            )

        self._audit.record(
            "route",
            f"Route {src_chain}->{dst_chain}: {amount} to {strategy} via {choice.bridge}",
            contract=self.address,
            src_chain=src_chain,
            dst_chain=dst_chain,
            strategy=strategy,
            amount=amount,
            bridge=choice.bridge,
            cross_chain=cross_chain,
        )
        return RoutingIntent(
            src_chain=src_chain,
            dst_chain=dst_chain,
            strategy=strategy,
            amount=amount,
            bridge=choice.bridge,
            fee=paid,
            cross_chain=cross_chain,
            transfer_id=transfer_id,
        )

    @guarded
    def receive_message(
        self,
        src_chain: ChainId,
        payload: bytes,
        *,
        sender: Address,
        sequence: Optional[int] = None,
    ) -> str:
        """Consume an inbound message at most once and allocate locally.

        Returns:
            The derived message id

        Raises:
            UnsupportedChain: If src_chain is zero
            Unauthorized: If sender is not a registered bridge
            DuplicateMessage: If the message id was already processed
            MalformedPayload: If the payload cannot be decoded
            InvalidStrategy: If the payload names a contract that is not one of the
                vault's adapters (the message is not marked processed)
        """
        if src_chain <= 0:
            raise UnsupportedChain("src_chain must be a non-zero chain id")
        if not self._catalog.is_supported(sender):
            raise Unauthorized(f"{sender} is not a supported bridge")

        message_id = derive_message_id(
            src_chain,
            payload,
            scheme=self._config.message_id_scheme,
            timestamp=self.env.now(),
            sequence=sequence,
        )
        if message_id in self._processed_messages:
            raise DuplicateMessage(f"message {message_id} already processed")
        self._processed_messages.add(message_id)

        instruction = decode_payload(payload)
        self._vault.allocate(instruction.strategy, instruction.amount, sender=self.address)

        self._audit.record(
            "message_received",
            f"Message {message_id} from chain {src_chain}: {instruction.amount} to {instruction.strategy}",
            contract=self.address,
            message_id=message_id,
            src_chain=src_chain,
            bridge=sender,
            strategy=instruction.strategy,
            amount=instruction.amount,
            sequence=sequence,
        )
        return message_id

    @guarded
    def rebalance(
        self,
        exits: Sequence[Address],
        enters: Sequence[Address],
        amounts: Sequence[Amount],
        *,
        sender: Address,
    ) -> list[RebalanceInstruction]:
        """Move allocations between strategies: all exits first, then all entries.

        Entries and exits are paired only by position; zero amounts are skipped.
        Any failing leg reverts the whole rebalance.

        Raises:
            LengthMismatch: If the three sequences differ in length
            InvalidAmount: If an amount is negative
            Unauthorized: If sender is not the administrator
        """
        if not len(exits) == len(enters) == len(amounts):
            raise LengthMismatch(
                f"exits ({len(exits)}), enters ({len(enters)}) and amounts ({len(amounts)}) must match"
            )
        if any(a < 0 for a in amounts):
            raise InvalidAmount("rebalance amounts must be >= 0")
        self._only_admin(sender)

        instructions: list[RebalanceInstruction] = []
        for strategy, amount in zip(exits, amounts):
            if amount == 0:
                continue
            returned = self._vault.deallocate(strategy, amount, sender=self.address)
            instructions.append(RebalanceInstruction(phase="exit", strategy=strategy, amount=amount, result=returned))
            self._audit.record(
                "rebalance_exit",
                f"Rebalance exit {amount} from {strategy}",
                contract=self.address,
                strategy=strategy,
                amount=amount,
                returned=returned,
            )

        for strategy, amount in zip(enters, amounts):
            if amount == 0:
                continue
            shares = self._vault.allocate(strategy, amount, sender=self.address)
            instructions.append(RebalanceInstruction(phase="enter", strategy=strategy, amount=amount, result=shares))
            self._audit.record(
                "rebalance_enter",
                f"Rebalance enter {amount} into {strategy}",
                contract=self.address,
                strategy=strategy,
                amount=amount,
                shares=shares,
            )

        logger.info("Rebalance executed %s instructions", len(instructions))
        return instructions

    # ========== Emergency ==========

    @guarded
    def sweep(self, asset: str, amount: Amount, to: Address, *, sender: Address) -> None:
        """Move anything the router holds (stray fees, mistaken transfers) out."""
        self._only_admin(sender)
        require_address(to, "to")
        if amount <= 0:
            raise InvalidAmount("sweep amount must be positive")
        self.env.balances.transfer(asset, self.address, to, amount)
        self._audit.record(
            "token_swept",
            f"Router swept {amount} {asset} to {to}",
            severity="warning",
            contract=self.address,
            asset=asset,
            amount=amount,
            to=to,
        )
