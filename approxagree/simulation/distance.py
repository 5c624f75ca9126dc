"""
Distance metrics and the discrepancy measure.

Discrepancy is the maximum pairwise distance among process values. It is
always recomputed from the current values, never updated incrementally.
"""

from enum import Enum
from typing import Sequence

import numpy as np

from .numeric import DEFAULT_NUMERIC, NumericContext


class DistanceMetric(Enum):
    """Distance between two coordinate vectors."""

    EUCLIDEAN = "euclidean"
    MANHATTAN = "manhattan"  # L1
    CHEBYSHEV = "chebyshev"  # L-infinity

    def distance(self, a: Sequence[float], b: Sequence[float]) -> float:
        diff = np.abs(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))
        if self is DistanceMetric.EUCLIDEAN:
            return float(np.sqrt(np.sum(diff * diff)))
        if self is DistanceMetric.MANHATTAN:
            return float(np.sum(diff))
        if self is DistanceMetric.CHEBYSHEV:
            return float(np.max(diff)) if diff.size else 0.0
        raise AssertionError(f"unhandled metric {self}")


def scalar_discrepancy(
    values: Sequence[float], numeric: NumericContext = DEFAULT_NUMERIC
) -> float:
    """Maximum pairwise absolute difference of scalar values.

    Evaluated in Decimal so that a true zero stays zero and tiny gaps are
    not swallowed by cancellation.
    """
    return float(numeric.max_abs_diff(values))


def vector_discrepancy(
    points: Sequence[Sequence[float]],
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
) -> float:
    """Maximum pairwise distance among coordinate vectors."""
    n = len(points)
    best = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            d = metric.distance(points[i], points[j])
            if d > best:
                best = d
    return best
