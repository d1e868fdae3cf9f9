"""Money helpers for the settlement engine.

Storage unit: fixed-point ``Decimal`` with two fractional digits, persisted as
``Numeric(14, 2)``. The currency itself is whatever the tenant trades in; the
engine is single-currency.

Loyalty points are whole integers derived from money with floor division.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")

# Tolerance allowed between a split payment's legs and its declared total
SPLIT_TOLERANCE = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_money(value: MoneyLike) -> Decimal:
    """Normalise any numeric input to a two-place Decimal (round half-up).

    Floats go through ``str`` so 0.1 stays 0.10 rather than its binary expansion.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def sum_money(values) -> Decimal:
    """Sum an iterable of money values, returning ``ZERO`` when empty."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def within_tolerance(a: MoneyLike, b: MoneyLike, tolerance: Decimal = SPLIT_TOLERANCE) -> bool:
    return abs(to_money(a) - to_money(b)) <= tolerance
