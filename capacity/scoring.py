import math
from typing import Sequence

# absorbs binary float error before truncating, so 0.59999999999 scores 0.6
_TRUNCATE_GUARD = 1e-9


def weighted_load(fractions: Sequence[float]) -> float:
    """Reduce utilization fractions to one load value, lower is better.

    The most saturated dimension counts squared. The remaining headroom
    (1 - max) is spread over the other dimensions proportionally to their own
    share, so a second busy dimension still raises the load while an idle one
    adds almost nothing.
    """
    if not fractions:
        return 0.0

    max_value = fractions[0]
    max_index = 0
    for i, v in enumerate(fractions):
        if v > max_value:
            max_value = v
            max_index = i

    complement = 1 - max_value
    remainder_sum = sum(v for i, v in enumerate(fractions) if i != max_index)

    total = max_value * max_value
    for i, v in enumerate(fractions):
        if i == max_index:
            continue
        if remainder_sum == 0:
            continue
        total += v * (v / remainder_sum * complement)
    return total


def score(fractions: Sequence[float], precision: int = 2) -> float:
    """LoadScore of a cluster: weighted_load truncated to `precision` decimals"""
    total = weighted_load(fractions)
    factor = 10 ** precision
    scaled = total * factor
    if not math.isfinite(scaled):
        return total
    return math.floor(scaled + _TRUNCATE_GUARD) / factor
