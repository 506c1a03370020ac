"""Latency statistics shared by the A/B tester and the comparator."""

import math
from collections.abc import Sequence


def mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def percentile(values: Sequence[float], pct: float) -> float | None:
    """
    Nearest-rank percentile.

    Args:
        values: Samples in any order.
        pct: Percentile in (0, 100].

    Returns:
        The smallest sample with at least pct percent of samples at or
        below it, or None for no samples.
    """
    if not values:
        return None
    ordered = sorted(values)
    rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
    return ordered[rank - 1]


def p95(values: Sequence[float]) -> float | None:
    return percentile(values, 95.0)
