import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (``2.5 -> 3``).

    ``round()`` rounds halves to even, so it is not used for percentages.
    """
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)
