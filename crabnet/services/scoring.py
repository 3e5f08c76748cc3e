"""Numeric helpers shared by the scoring modules."""

import math


def clamp(value: float, min_val: float = 0.0, max_val: float = 100.0) -> float:
    """Clamp a value to [min_val, max_val]."""
    return max(min_val, min(max_val, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values.

    Python's ``round`` uses banker's rounding (``round(2.5) == 2``); scores use
    the conventional rule so that ``x.5`` always rounds up.
    """
    return int(math.floor(value + 0.5))
