"""Shared test fixtures for pytest.

Provides a deterministic environment, a ledger with two simulated strategies, a
router wired to the ledger, and common mocks.
"""

from unittest.mock import Mock

import pytest

from meluri.audit import AuditLogger
from meluri.chain import NATIVE_ASSET, Environment, ManualClock
from meluri.config import RouterConfig, VaultConfig
from meluri.router import Router
from meluri.strategies import (
    LendingAdapter,
    SimulatedLendingMarket,
    SimulatedTokenizedVault,
    TokenizedVaultAdapter,
)
from meluri.vault import Vault

ASSET = "USDC"
ADMIN = "0x" + "a" * 40
ALICE = "0x" + "1" * 40
BOB = "0x" + "2" * 40
MALLORY = "0x" + "6" * 40


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture
def env(clock: ManualClock) -> Environment:
    """Environment for chain 1 with a manual clock."""
    return Environment(chain_id=1, clock=clock)


@pytest.fixture
def audit(env: Environment) -> AuditLogger:
    log = AuditLogger()
    env.attach_journal(log)
    return log


@pytest.fixture
def vault(env: Environment, audit: AuditLogger) -> Vault:
    return Vault(env, asset=ASSET, admin=ADMIN, config=VaultConfig(max_strategies=3), audit=audit)


@pytest.fixture
def funded(env: Environment) -> Environment:
    """Give Alice and Bob 1_000_000 base units each (plus native for fees to the admin)."""
    env.balances.mint(ASSET, ALICE, 1_000_000)
    env.balances.mint(ASSET, BOB, 1_000_000)
    env.balances.mint(NATIVE_ASSET, ADMIN, 10**18)
    return env


@pytest.fixture
def market(env: Environment) -> SimulatedLendingMarket:
    return SimulatedLendingMarket(env, asset=ASSET, rate_bps=450, oracle_bps=12)


@pytest.fixture
def lending(env: Environment, vault: Vault, market: SimulatedLendingMarket, audit: AuditLogger) -> LendingAdapter:
    """Lending adapter administered by the vault (so emergency exit can drain it)."""
    return LendingAdapter(env, market=market.address, asset=ASSET, vault=vault.address, admin=vault.address, audit=audit)


@pytest.fixture
def target(env: Environment) -> SimulatedTokenizedVault:
    return SimulatedTokenizedVault(env, asset=ASSET, apy=600)


@pytest.fixture
def tokenized(
    env: Environment, vault: Vault, target: SimulatedTokenizedVault, audit: AuditLogger
) -> TokenizedVaultAdapter:
    return TokenizedVaultAdapter(
        env, target=target.address, asset=ASSET, vault=vault.address, admin=vault.address, audit=audit
    )


@pytest.fixture
def router(env: Environment, vault: Vault, audit: AuditLogger) -> Router:
    """Router registered on the vault."""
    r = Router(env, vault=vault, admin=ADMIN, config=RouterConfig(max_bridges=3), audit=audit)
    vault.set_router(r.address, sender=ADMIN)
    return r


@pytest.fixture
def mock_db_engine() -> Mock:
    """Mock SQLAlchemy engine for testing database operations."""
    mock_engine = Mock()
    mock_conn = Mock()
    mock_result = Mock()
    mock_result.rowcount = 1
    mock_result.fetchone.return_value = None
    mock_result.fetchall.return_value = []
    mock_conn.execute.return_value = mock_result
    mock_engine.begin.return_value.__enter__ = Mock(return_value=mock_conn)
    mock_engine.begin.return_value.__exit__ = Mock(return_value=False)
    return mock_engine
