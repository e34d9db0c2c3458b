"""Small numeric helpers shared by the scorers."""

from __future__ import annotations

import math


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    """Clamp *value* into ``[lower, upper]``."""
    return max(lower, min(upper, value))


def round_half_up(value: float) -> int:
    """Round with .5 going up, e.g. 46.5 -> 47 and -2.5 -> -2.

    The builtin ``round`` uses banker's rounding, which would move interval
    bounds by one point on exact halves.
    """
    return int(math.floor(value + 0.5))


def safe_ratio(numerator: float, denominator: float) -> float:
    """``numerator / denominator``, or 0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator
