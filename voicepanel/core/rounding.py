from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number, digits: int = 0) -> float:
    """
    Round half away from zero (7.25 -> 7.3, 83.5 -> 84), unlike the builtin
    round() which rounds half to even.
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


def clamp(value: Number, low: Number, high: Number) -> Number:
    return max(low, min(high, value))
