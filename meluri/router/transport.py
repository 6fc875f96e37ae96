"""Bridge transport boundary and an in-memory relay network.

The router only depends on ``BridgeTransport.send``. ``BridgeNetwork`` links one
``BridgeEndpoint`` per domain: the source endpoint queues envelopes in its outbox
(part of its transactional state, so a reverted route leaves nothing queued) and
``BridgeNetwork.deliver`` relays them to the destination router.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from meluri.audit import AuditLogger
from meluri.chain import NATIVE_ASSET, Administered, Environment, guarded, require_address
from meluri.errors import InvalidAmount, UnsupportedChain
from meluri.types import ZERO_ADDRESS, Address, Amount, ChainId

if TYPE_CHECKING:
    from meluri.router.router import Router

logger = logging.getLogger(__name__)


@runtime_checkable
class BridgeTransport(Protocol):
    """Anything able to carry a payload to another domain for a native fee."""

    address: Address

    def send(self, dst_chain: ChainId, payload: bytes, fee: Amount, *, sender: Address) -> str:
        """Queue ``payload`` for ``dst_chain``, pulling ``fee`` from the sender.

        Returns:
            Transfer identifier
        """


@dataclass(frozen=True)
class Envelope:
    """One message in flight."""

    transfer_id: str
    src_chain: ChainId
    dst_chain: ChainId
    sequence: int
    payload: bytes
    fee: Amount


@dataclass(frozen=True)
class DeliveryResult:
    envelope: Envelope
    delivered: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class BridgeEndpoint(Administered):
    """Per-domain side of a bridge.

    Outbound: ``send`` collects the fee and queues an envelope with a per-route
    sequence number. Inbound: ``relay`` hands a payload to the configured receiver
    (the local router), authenticated as this endpoint.
    """

    _state_fields = ("_admin", "_receiver", "_outbox", "_sequences", "fees_collected")

    def __init__(
        self,
        env: Environment,
        *,
        network: BridgeNetwork,
        admin: Address,
        label: str = "bridge-endpoint",
    ) -> None:
        super().__init__(env, admin=admin, label=label)
        self.network = network
        self._receiver: Address = ZERO_ADDRESS
        self._outbox: list[Envelope] = []
        self._sequences: dict[ChainId, int] = {}
        self.fees_collected: Amount = 0

    @property
    def chain_id(self) -> ChainId:
        return self.env.chain_id

    @property
    def receiver(self) -> Address:
        return self._receiver

    @property
    def outbox(self) -> tuple[Envelope, ...]:
        return tuple(self._outbox)

    @guarded
    def set_receiver(self, receiver: Address, *, sender: Address) -> None:
        self._only_admin(sender)
        require_address(receiver, "receiver")
        self._receiver = receiver

    @guarded
    def send(self, dst_chain: ChainId, payload: bytes, fee: Amount, *, sender: Address) -> str:
        if dst_chain <= 0 or dst_chain == self.chain_id:
            raise UnsupportedChain(f"cannot bridge from {self.chain_id} to {dst_chain}")
        if fee < 0:
            raise InvalidAmount("fee must be >= 0")
        if not self.network.has_endpoint(dst_chain):
            raise UnsupportedChain(f"{self.network.name} has no endpoint on chain {dst_chain}")

        sequence = self._sequences.get(dst_chain, 0) + 1
        self._sequences[dst_chain] = sequence
        transfer_id = Environment.hash(self.network.name, self.chain_id, dst_chain, sequence, payload)
        self._outbox.append(
            Envelope(
                transfer_id=transfer_id,
                src_chain=self.chain_id,
                dst_chain=dst_chain,
                sequence=sequence,
                payload=payload,
                fee=fee,
            )
        )
        self.fees_collected += fee
        self.env.balances.transfer(NATIVE_ASSET, sender, self.address, fee)
        logger.debug("%s queued %s for chain %s (seq %s)", self.network.name, transfer_id, dst_chain, sequence)
        return transfer_id

    @guarded
    def take_outbox(self) -> list[Envelope]:
        """Remove and return every queued envelope."""
        envelopes, self._outbox = self._outbox, []
        return envelopes

    @guarded
    def relay(self, envelope: Envelope) -> str:
        """Deliver an inbound envelope to the local router; returns the message id."""
        router = self._resolve_receiver()
        return router.receive_message(
            envelope.src_chain,
            envelope.payload,
            sender=self.address,
            sequence=envelope.sequence,
        )

    def _resolve_receiver(self) -> Router:
        from meluri.router.router import Router

        receiver = self.env.contract(self._receiver)
        if not isinstance(receiver, Router):
            raise UnsupportedChain(f"no router configured behind endpoint {self.address}")
        return receiver


class BridgeNetwork:
    """A named bridge spanning several domains, one endpoint per domain."""

    def __init__(self, name: str, *, audit: Optional[AuditLogger] = None) -> None:
        self.name = name
        self.audit = audit or AuditLogger()
        self._endpoints: dict[ChainId, BridgeEndpoint] = {}

    def deploy_endpoint(self, env: Environment, *, admin: Address) -> BridgeEndpoint:
        if env.chain_id in self._endpoints:
            raise ValueError(f"{self.name} already has an endpoint on chain {env.chain_id}")
        endpoint = BridgeEndpoint(env, network=self, admin=admin, label=f"{self.name}-{env.chain_id}")
        self._endpoints[env.chain_id] = endpoint
        return endpoint

    def has_endpoint(self, chain_id: ChainId) -> bool:
        return chain_id in self._endpoints

    def endpoint(self, chain_id: ChainId) -> BridgeEndpoint:
        try:
            return self._endpoints[chain_id]
        except KeyError:
            raise UnsupportedChain(f"{self.name} has no endpoint on chain {chain_id}") from None

    def pending(self) -> int:
        return sum(len(e.outbox) for e in self._endpoints.values())

    def deliver(self) -> list[DeliveryResult]:
        """Relay every queued envelope to its destination.

        Delivery is best-effort: a rejected envelope is reported and dropped,
        and the remaining envelopes are still delivered.
        """
        results: list[DeliveryResult] = []
        for source in list(self._endpoints.values()):
            for envelope in source.take_outbox():
                target = self._endpoints.get(envelope.dst_chain)
                try:
                    if target is None:
                        raise UnsupportedChain(f"no endpoint on chain {envelope.dst_chain}")
                    message_id = target.relay(envelope)
                except Exception as exc:
                    logger.warning(
                        "%s delivery of %s to chain %s failed: %s: %s",
                        self.name,
                        envelope.transfer_id,
                        envelope.dst_chain,
                        exc.__class__.__name__,
                        exc,
                    )
                    self.audit.record(
                        "delivery_failed",
                        f"{self.name} could not deliver {envelope.transfer_id}: {exc.__class__.__name__}: {exc}",
                        severity="warning",
                        bridge=self.name,
                        transfer_id=envelope.transfer_id,
                        src_chain=envelope.src_chain,
                        dst_chain=envelope.dst_chain,
                        sequence=envelope.sequence,
                        error=str(exc),
                    )
                    results.append(DeliveryResult(envelope=envelope, delivered=False, error=str(exc)))
                    continue
                results.append(DeliveryResult(envelope=envelope, delivered=True, message_id=message_id))
        return results
