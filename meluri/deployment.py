"""Wiring for one domain: environment, audit log, ledger and router.

``deploy`` builds the core pieces; ``bootstrap_simulated`` adds in-memory yield
protocols with their adapters and a bridge endpoint, for local runs and demos.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from meluri.audit import AuditLogger
from meluri.chain import NATIVE_ASSET, Environment
from meluri.config import Settings
from meluri.persistence import AuditEventStore
from meluri.router import BridgeEndpoint, BridgeNetwork, Router
from meluri.storage import SqlAuditEventStore, SqlConfig
from meluri.strategies import (
    LendingAdapter,
    SimulatedLendingMarket,
    SimulatedTokenizedVault,
    StrategyAdapter,
    TokenizedVaultAdapter,
)
from meluri.types import Address, Amount, BridgeQuote
from meluri.vault import Vault

logger = logging.getLogger(__name__)

DEFAULT_ASSET = "USDC"


@dataclass
class Deployment:
    """Handles to everything deployed on one domain."""

    settings: Settings
    env: Environment
    audit: AuditLogger
    admin: Address
    vault: Vault
    router: Router
    store: Optional[AuditEventStore] = None
    strategies: dict[str, StrategyAdapter] = field(default_factory=dict)
    protocols: dict[str, object] = field(default_factory=dict)
    bridges: dict[str, BridgeEndpoint] = field(default_factory=dict)

    @property
    def chain_id(self) -> int:
        return self.env.chain_id

    def fund(self, account: Address, amount: Amount, asset: Optional[str] = None) -> None:
        """Mint test balance to an account (base asset by default)."""
        self.env.balances.mint(asset or self.vault.asset, account, amount)


def _build_store(settings: Settings) -> Optional[AuditEventStore]:
    if not settings.database_url:
        return None
    store = SqlAuditEventStore(config=SqlConfig(database_url=settings.database_url))
    store.ensure_schema()
    logger.info("Audit events will be persisted to the configured database")
    return store


def deploy(
    settings: Optional[Settings] = None,
    *,
    asset: str = DEFAULT_ASSET,
    admin: Optional[Address] = None,
    clock: Optional[Callable[[], int]] = None,
    store: Optional[AuditEventStore] = None,
) -> Deployment:
    """Deploy a ledger and its router on a fresh environment.

    Args:
        settings: Deployment settings (defaults to ``Settings()``)
        asset: Base asset of the ledger
        admin: Administrator identity (derived when omitted)
        clock: Timestamp source (wall clock when omitted)
        store: Audit event store; built from ``settings.database_url`` when omitted

    Returns:
        Deployment with the router registered on the ledger
    """
    settings = settings or Settings()
    env = Environment(chain_id=settings.chain_id, clock=clock)
    if store is None:
        store = _build_store(settings)
    audit = AuditLogger(store)
    env.attach_journal(audit)

    admin = admin or env.new_address("admin")
    vault = Vault(env, asset=asset, admin=admin, config=settings.vault, audit=audit)
    router = Router(env, vault=vault, admin=admin, config=settings.router, audit=audit)
    vault.set_router(router.address, sender=admin)

    logger.info(
        "Deployed vault %s and router %s on chain %s (asset %s)",
        vault.address,
        router.address,
        env.chain_id,
        asset,
    )
    return Deployment(
        settings=settings,
        env=env,
        audit=audit,
        admin=admin,
        vault=vault,
        router=router,
        store=store,
    )


def bootstrap_simulated(
    settings: Optional[Settings] = None,
    *,
    asset: str = DEFAULT_ASSET,
    network: Optional[BridgeNetwork] = None,
    clock: Optional[Callable[[], int]] = None,
    store: Optional[AuditEventStore] = None,
) -> Deployment:
    """Deploy the core plus simulated strategies and a bridge endpoint.

    Adapters are administered by the ledger so its emergency exit can drain them.
    The bridge endpoint delivers inbound messages to this domain's router and is
    registered as a supported bridge.
    """
    deployment = deploy(settings, asset=asset, clock=clock, store=store)
    env, audit, vault, admin = deployment.env, deployment.audit, deployment.vault, deployment.admin

    market = SimulatedLendingMarket(env, asset=asset)
    tokenized = SimulatedTokenizedVault(env, asset=asset)
    deployment.protocols.update({"lending": market, "tokenized": tokenized})
    deployment.strategies["lending"] = LendingAdapter(
        env, market=market.address, asset=asset, vault=vault.address, admin=vault.address, audit=audit
    )
    deployment.strategies["tokenized"] = TokenizedVaultAdapter(
        env, target=tokenized.address, asset=asset, vault=vault.address, admin=vault.address, audit=audit
    )

    network = network or BridgeNetwork("loopback", audit=audit)
    endpoint = network.deploy_endpoint(env, admin=admin)
    endpoint.set_receiver(deployment.router.address, sender=admin)
    deployment.router.add_bridge(endpoint.address, sender=admin)
    deployment.bridges[network.name] = endpoint

    # Native balance for bridge fees.
    env.balances.mint(NATIVE_ASSET, admin, 10**18)
    return deployment


def link_domains(
    source: Deployment,
    destination: Deployment,
    *,
    network: str,
    estimated_cost: Amount,
    estimated_time_seconds: int,
    security_score: int,
) -> BridgeQuote:
    """Quote the source's endpoint of ``network`` for source -> destination routes."""
    endpoint = source.bridges[network]
    if network not in destination.bridges:
        raise ValueError(f"destination chain {destination.chain_id} has no {network} endpoint")
    quote = BridgeQuote(
        bridge=endpoint.address,
        estimated_cost=estimated_cost,
        estimated_time_seconds=estimated_time_seconds,
        security_score=security_score,
    )
    source.router.add_quote(source.chain_id, destination.chain_id, quote, sender=source.admin)
    return quote
