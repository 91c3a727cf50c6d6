"""
Core Utilities

Shared helpers for timestamps and money arithmetic.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, float, int, str]

CENT = Decimal("0.01")


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def to_money(amount: Number) -> Decimal:
    """Quantize any numeric amount to two decimals, half-up."""
    if amount is None:
        return Decimal("0.00")
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Number) -> int:
    """Convert a currency amount to integer minor units."""
    return int(to_money(amount) * 100)


def from_cents(amount_cents: int) -> Decimal:
    """Convert integer minor units back to a currency amount."""
    return to_money(Decimal(amount_cents or 0) / Decimal(100))
