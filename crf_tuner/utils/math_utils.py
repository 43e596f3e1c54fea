"""Numeric helpers shared by the sampler and the CRF search."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (62.5 -> 63).

    Python's round() rounds halves to even (62.5 -> 62).
    """
    return int(math.floor(value + 0.5))
