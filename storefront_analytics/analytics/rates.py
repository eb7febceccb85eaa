"""
Rate and rounding helpers shared by the reducers.

Every percentage goes through ``percentage``: a zero denominator yields 0
and results are clamped to [0, 100]. Histogram shares floor their
denominator at 1. Rounding is half-up.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float]


def round_half_up(value: Optional[Number], digits: int = 0) -> Number:
    """Round like a dashboard would (2.5 -> 3), returning int for 0 digits."""
    if value is None:
        return 0 if digits == 0 else 0.0
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def percentage(part: Number, whole: Number, digits: int = 0) -> Number:
    """``part / whole * 100``, 0 for an empty whole, clamped to [0, 100]."""
    if not whole:
        return round_half_up(0, digits)
    value = part / whole * 100
    return round_half_up(min(max(value, 0.0), 100.0), digits)


def share(count: Number, total: Number) -> int:
    """Histogram bucket share with the denominator floored at 1."""
    return percentage(count, max(total, 1), 0)


def percent_change(current: Number, previous: Number, digits: int = 1) -> Number:
    """Relative change against a previous period; 0 when there is no baseline."""
    if not previous:
        return round_half_up(0, digits)
    return round_half_up((current - previous) / previous * 100, digits)


def mean(total: Number, count: Number, digits: int = 0) -> Number:
    if not count:
        return round_half_up(0, digits)
    return round_half_up(total / count, digits)
