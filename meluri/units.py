"""Conversions between human-readable decimal amounts and integer base units."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext

DEFAULT_DECIMALS = 18


def to_units(value: Decimal | str | int, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a decimal amount (e.g. ``Decimal("0.01")``) into base units.

    Digits beyond ``decimals`` are truncated.

    Raises:
        ValueError: If the value is negative or decimals is negative
    """
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    if amount < 0:
        raise ValueError("amount must be >= 0")
    with localcontext() as ctx:
        ctx.prec = 78
        scaled = (amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_units(units: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert base units back into a decimal amount."""
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    with localcontext() as ctx:
        ctx.prec = 78
        return Decimal(units) / (Decimal(10) ** decimals)
