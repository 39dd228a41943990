import math
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number, ndigits: int = 0) -> Number:
    """
    Round halves away from zero for positive values (2.5 -> 3).

    Python's round() uses banker's rounding, which would make percentages
    like 62.5 come out as 62. Returns an int when ndigits == 0.
    """
    factor = 10 ** ndigits
    rounded = math.floor(value * factor + 0.5) / factor
    if ndigits == 0:
        return int(rounded)
    return rounded


def percentage(part: Number, whole: Number) -> float:
    """part / whole * 100, or 0.0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return part / whole * 100


def clamp(value: Number, low: Number = 0, high: Number = 100) -> Number:
    return max(low, min(high, value))
