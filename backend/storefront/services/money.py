"""Minor-unit money helpers.

All checkout arithmetic runs on integers counted in the currency's minor unit
(paisa). Decimals only appear at the edges: catalog prices arrive as major
units and are converted once, and labels are rendered for messages.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from storefront.core.config import settings

MINOR_PER_MAJOR = 100
MONEY_QUANT = Decimal("0.01")


def to_minor(amount: Decimal | int | str | None) -> int:
    """Convert a major-unit amount to minor units, rounding half-up; negatives clamp to 0."""
    if amount is None:
        return 0
    minor = (Decimal(str(amount)) * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(minor))


def from_minor(minor: int) -> Decimal:
    return (Decimal(int(minor)) / MINOR_PER_MAJOR).quantize(MONEY_QUANT)


def clamp(value: int, low: int, high: int) -> int:
    if high < low:
        raise ValueError("clamp upper bound is below lower bound")
    return max(low, min(int(value), high))


def percent_of(base_minor: int, percent: int) -> int:
    """``floor(base * percent / 100)`` on integers; percent is clamped to 0..100."""
    pct = clamp(percent, 0, 100)
    return (max(0, int(base_minor)) * pct) // 100


def format_minor(minor: int, *, symbol: str | None = None) -> str:
    label = symbol if symbol is not None else settings.currency_symbol
    return f"{label} {from_minor(minor):,.2f}"
