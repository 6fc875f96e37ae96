"""Bridge registry and per-chain-pair quote catalog."""

from __future__ import annotations

import logging
from typing import Optional

from meluri.errors import (
    BridgeAlreadySupported,
    CapacityExceeded,
    NoBridgeAvailable,
    UnsupportedBridge,
    UnsupportedChain,
)
from meluri.router.scoring import select_best_quote
from meluri.types import ZERO_ADDRESS, Address, BridgeChoice, BridgeQuote, ChainId

logger = logging.getLogger(__name__)

ChainPair = tuple[ChainId, ChainId]


def _check_chain(chain_id: ChainId, name: str) -> None:
    if chain_id <= 0:
        raise UnsupportedChain(f"{name} must be a non-zero chain id")


class BridgeCatalog:
    """Registered bridges plus an append-only quote list per (src, dst) pair.

    Both the registry and every pair list are capped at ``max_bridges``. Quotes
    are never deduplicated; stale quotes stay until ``clear_quotes``.
    """

    def __init__(self, *, max_bridges: int, native_decimals: int = 18) -> None:
        if max_bridges <= 0:
            raise ValueError("max_bridges must be positive")
        self.max_bridges = max_bridges
        self.native_decimals = native_decimals
        self._bridges: list[Address] = []
        self._quotes: dict[ChainPair, list[BridgeQuote]] = {}

    # ========== Registry ==========

    @property
    def bridges(self) -> tuple[Address, ...]:
        return tuple(self._bridges)

    def is_supported(self, bridge: Address) -> bool:
        return bridge in self._bridges

    def add_bridge(self, bridge: Address) -> None:
        """Register a bridge.

        Raises:
            UnsupportedBridge: If bridge is the zero address
            BridgeAlreadySupported: If already registered
            CapacityExceeded: If the registry is full
        """
        if not bridge or bridge == ZERO_ADDRESS:
            raise UnsupportedBridge("bridge must be a non-zero address")
        if bridge in self._bridges:
            raise BridgeAlreadySupported(f"bridge {bridge} is already supported")
        if len(self._bridges) >= self.max_bridges:
            raise CapacityExceeded(f"bridge cap of {self.max_bridges} reached")
        self._bridges.append(bridge)

    def remove_bridge(self, bridge: Address) -> None:
        """Unregister a bridge, keeping the order of the remaining ones."""
        if bridge not in self._bridges:
            raise UnsupportedBridge(f"bridge {bridge} is not supported")
        self._bridges.remove(bridge)

    # ========== Quotes ==========

    def quotes(self, src_chain: ChainId, dst_chain: ChainId) -> tuple[BridgeQuote, ...]:
        return tuple(self._quotes.get((src_chain, dst_chain), ()))

    def pairs(self) -> list[ChainPair]:
        return [pair for pair, quotes in self._quotes.items() if quotes]

    def add_quote(self, src_chain: ChainId, dst_chain: ChainId, quote: BridgeQuote) -> None:
        """Append a quote to a pair's list.

        Raises:
            UnsupportedChain: If either chain id is zero
            UnsupportedBridge: If the quoted bridge is not registered
            CapacityExceeded: If the pair already holds max_bridges quotes
        """
        _check_chain(src_chain, "src_chain")
        _check_chain(dst_chain, "dst_chain")
        if quote.bridge not in self._bridges:
            raise UnsupportedBridge(f"bridge {quote.bridge} is not supported")
        pair_quotes = self._quotes.setdefault((src_chain, dst_chain), [])
        if len(pair_quotes) >= self.max_bridges:
            raise CapacityExceeded(f"pair {src_chain}->{dst_chain} already has {self.max_bridges} quotes")
        pair_quotes.append(quote)

    def clear_quotes(self, src_chain: ChainId, dst_chain: ChainId) -> int:
        """Drop every quote for a pair; returns how many were removed."""
        return len(self._quotes.pop((src_chain, dst_chain), []))

    # ========== Selection ==========

    def optimal_bridge(self, src_chain: ChainId, dst_chain: ChainId) -> BridgeChoice:
        """Pick the best-scoring bridge for a pair.

        Falls back to the first registered bridge at cost 0 when the pair has no
        quotes.

        Raises:
            UnsupportedChain: If either chain id is zero
            NoBridgeAvailable: If there are no quotes and no registered bridges
        """
        _check_chain(src_chain, "src_chain")
        _check_chain(dst_chain, "dst_chain")

        best = select_best_quote(self.quotes(src_chain, dst_chain), native_decimals=self.native_decimals)
        if best is not None:
            return BridgeChoice(bridge=best.quote.bridge, cost=best.quote.estimated_cost)

        if not self._bridges:
            raise NoBridgeAvailable(f"no bridge available for {src_chain}->{dst_chain}")
        logger.debug("No quotes for %s->%s, falling back to %s", src_chain, dst_chain, self._bridges[0])
        return BridgeChoice(bridge=self._bridges[0], cost=0)

    def best_score(self, src_chain: ChainId, dst_chain: ChainId) -> Optional[int]:
        best = select_best_quote(self.quotes(src_chain, dst_chain), native_decimals=self.native_decimals)
        return None if best is None else best.score
