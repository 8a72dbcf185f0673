"""Decimal helpers shared by the calculation engines."""

from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Iterable, Optional, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Number], default: Decimal = ZERO) -> Decimal:
    """Convert a scalar to Decimal; floats go through str() to avoid binary noise."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    """Round with ROUND_HALF_UP (0.5 -> 1, 2.5 -> 3)."""
    quantum = Decimal(1).scaleb(-places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def ceil_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def pct_of(amount: Decimal, rate_pct: Decimal) -> Decimal:
    """amount * rate / 100"""
    return amount * rate_pct / HUNDRED


def dsum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)
