from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, NamedTuple

from meluri.errors import InvalidQuote

Address = str
Amount = int  # base units of an asset
ChainId = int

ZERO_ADDRESS: Address = "0x" + "0" * 40

MessageIdScheme = Literal["timestamp", "sequence"]


@dataclass(frozen=True)
class BridgeQuote:
    """Quoted terms for moving a message between two domains over one bridge."""

    bridge: Address
    estimated_cost: Amount  # native asset base units
    estimated_time_seconds: int
    security_score: int  # 0-100

    def __post_init__(self) -> None:
        if not self.bridge or self.bridge == ZERO_ADDRESS:
            raise InvalidQuote("bridge address must be set")
        if self.estimated_cost < 0:
            raise InvalidQuote("estimated_cost must be >= 0")
        if self.estimated_time_seconds < 0:
            raise InvalidQuote("estimated_time_seconds must be >= 0")
        if not 0 <= self.security_score <= 100:
            raise InvalidQuote("security_score must be within 0-100")


class BridgeChoice(NamedTuple):
    bridge: Address
    cost: Amount


@dataclass(frozen=True)
class ScoredQuote:
    """Quote with its composite score (fixed-point, see router.scoring)."""

    quote: BridgeQuote
    score: int


@dataclass(frozen=True)
class RiskMetrics:
    utilization_bps: int
    liquidation_risk_bps: int
    oracle_deviation_bps: int


@dataclass(frozen=True)
class RoutingIntent:
    """Outcome of a route call.

    `fee` is the native amount handed to the bridge (0 for same-domain dispatch).
    """

    src_chain: ChainId
    dst_chain: ChainId
    strategy: Address
    amount: Amount
    bridge: Address
    fee: Amount
    cross_chain: bool
    transfer_id: str | None = None


@dataclass(frozen=True)
class RebalanceInstruction:
    phase: Literal["exit", "enter"]
    strategy: Address
    amount: Amount
    result: Amount


@dataclass(frozen=True)
class StrategyAllocation:
    strategy: Address
    allocation: Amount


@dataclass(frozen=True)
class VaultSnapshot:
    """Point-in-time view of the ledger totals."""

    asset: str
    total_assets: Amount
    total_shares: int
    share_price: int
    idle_balance: Amount
    paused: bool
    allocations: tuple[StrategyAllocation, ...] = ()
