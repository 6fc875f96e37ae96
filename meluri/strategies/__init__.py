"""Strategy adapters.

One adapter per integrated yield protocol, all satisfying the StrategyAdapter
capability set (deposit, withdraw, APY, TVL, risk metrics, emergency withdraw).
"""

from .base import StrategyAdapter
from .lending import LendingAdapter, LendingMarket
from .simulated import ProtocolFrozen, SimulatedLendingMarket, SimulatedTokenizedVault
from .tokenized_vault import TokenizedVault, TokenizedVaultAdapter

__all__ = [
    # Contract
    "StrategyAdapter",
    # Variants
    "LendingAdapter",
    "LendingMarket",
    "TokenizedVault",
    "TokenizedVaultAdapter",
    # Simulated protocols
    "ProtocolFrozen",
    "SimulatedLendingMarket",
    "SimulatedTokenizedVault",
]
