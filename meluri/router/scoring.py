"""Composite bridge scoring.

Each quote is scored on three weighted terms:

- cost: ``COST_WEIGHT / cost`` with cost measured in whole native units
  (``COST_WEIGHT`` when the quote is free)
- speed: ``REFERENCE_TIME_SECONDS * SPEED_WEIGHT / time`` (``SPEED_WEIGHT`` when instant)
- security: ``security_score * SECURITY_WEIGHT / 100``

Terms are exact Decimals; the sum is scaled by SCORE_SCALE and truncated once.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Optional, Sequence

from meluri.types import BridgeQuote, ScoredQuote

COST_WEIGHT = 40
SPEED_WEIGHT = 30
SECURITY_WEIGHT = 30
REFERENCE_TIME_SECONDS = 3600
SCORE_SCALE = 10**18


def score_quote(quote: BridgeQuote, *, native_decimals: int = 18) -> int:
    """Compute the fixed-point composite score of a quote.

    Args:
        quote: Bridge quote to score
        native_decimals: Decimals of the native fee asset (cost is scored per whole unit)

    Returns:
        Composite score scaled by SCORE_SCALE (e.g. 4387 * SCORE_SCALE for a
        0.01 / 300s / 90 quote)
    """
    with localcontext() as ctx:
        ctx.prec = 78

        if quote.estimated_cost > 0:
            cost = Decimal(quote.estimated_cost).scaleb(-native_decimals)
            cost_score = Decimal(COST_WEIGHT) / cost
        else:
            cost_score = Decimal(COST_WEIGHT)

        if quote.estimated_time_seconds > 0:
            speed_score = Decimal(REFERENCE_TIME_SECONDS * SPEED_WEIGHT) / Decimal(quote.estimated_time_seconds)
        else:
            speed_score = Decimal(SPEED_WEIGHT)

        security_score = Decimal(quote.security_score * SECURITY_WEIGHT) / Decimal(100)

        total = (cost_score + speed_score + security_score) * SCORE_SCALE
        return int(total.to_integral_value(rounding=ROUND_DOWN))


def score_quotes(quotes: Sequence[BridgeQuote], *, native_decimals: int = 18) -> list[ScoredQuote]:
    """Score every quote, preserving list order."""
    return [ScoredQuote(quote=q, score=score_quote(q, native_decimals=native_decimals)) for q in quotes]


def select_best_quote(quotes: Sequence[BridgeQuote], *, native_decimals: int = 18) -> Optional[ScoredQuote]:
    """Single-pass argmax over ``quotes``.

    Only a strictly greater score replaces the current best, so ties go to the
    lowest list index.

    Returns:
        Winning quote with its score, or None for an empty list
    """
    best: Optional[ScoredQuote] = None
    for quote in quotes:
        score = score_quote(quote, native_decimals=native_decimals)
        if best is None or score > best.score:
            best = ScoredQuote(quote=quote, score=score)
    return best
