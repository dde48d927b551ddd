"""
Exchange rounding helpers on Decimal.

- quantities: floor to the lot step (never round a sell up past what is held)
- prices: nearest tick multiple, half-up
"""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, getcontext

# Increase precision to avoid intermediate rounding drift
getcontext().prec = 28

__all__ = ["round_to_step", "round_to_tick", "format_decimal", "to_decimal"]


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    if step <= 0:
        return value
    units = (value / step).to_integral_value(rounding=ROUND_DOWN)
    return (units * step).quantize(step)


def round_to_tick(value: Decimal, tick: Decimal) -> Decimal:
    if tick <= 0:
        return value
    ticks = (value / tick).to_integral_value(rounding=ROUND_HALF_UP)
    return (ticks * tick).quantize(tick)


def format_decimal(value: Decimal) -> str:
    """Plain (non-scientific) string without trailing zeros, as the REST API expects."""
    text = format(value.normalize(), "f")
    return text if text not in ("-0", "") else "0"


def to_decimal(value) -> Decimal:
    """Convert exchange payload values (strings, ints, floats) to Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))
