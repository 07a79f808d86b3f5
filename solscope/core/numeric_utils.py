"""
Utility functions for numeric coercion at boundaries.

Upstream payloads (Dune rows, Helius transactions, LLM replies) carry numbers
as ints, floats, numeric strings or nulls. These helpers convert them once at
the boundary so the metric pipeline only ever sees ``float`` or ``None``.
"""

import math
import statistics
from typing import Iterable, List, Optional, Union

Number = Union[int, float]


def coerce_float(value: Optional[Union[float, str, int]]) -> Optional[float]:
    """
    Safely convert an upstream value to float.

    Args:
        value: Float, string, int, or None to convert

    Returns:
        Float value, or None if value is None, malformed or not finite
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            result = float(value)
        except (ValueError, TypeError):
            return None
    elif isinstance(value, (int, float)):
        result = float(value)
    else:
        return None

    if math.isnan(result) or math.isinf(result):
        return None
    return result


def float_or_zero(value: Optional[Union[float, str, int]]) -> float:
    """Coerce to float, mapping missing or malformed values to 0.0."""
    result = coerce_float(value)
    return 0.0 if result is None else result


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide two floats, returning default if denominator is zero.

    Args:
        numerator: Float numerator
        denominator: Float denominator
        default: Value to return if denominator is zero

    Returns:
        Result of division, or default if denominator is zero
    """
    if denominator == 0:
        return default
    return numerator / denominator


def mean(values: Iterable[Number]) -> float:
    """Arithmetic mean; 0.0 for an empty sequence."""
    xs = list(values)
    if not xs:
        return 0.0
    return sum(xs) / len(xs)


def median(values: Iterable[Number]) -> float:
    """Median with the two middle values averaged; 0.0 for an empty sequence."""
    xs = sorted(values)
    if not xs:
        return 0.0
    middle = len(xs) // 2
    if len(xs) % 2 == 0:
        return (xs[middle - 1] + xs[middle]) / 2
    return float(xs[middle])


def pstdev(values: Iterable[Number]) -> float:
    """Population standard deviation; 0.0 for an empty sequence or equal values."""
    xs: List[float] = [float(x) for x in values]
    if not xs:
        return 0.0
    # statistics works on exact fractions, so equal inputs give exactly 0.0
    return statistics.pstdev(xs)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))
