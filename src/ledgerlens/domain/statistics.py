"""Numeric helpers shared by the insight analyzers.

All functions are pure. Standard deviation is the population form (divide by
N), so a single sample has a deviation of 0 rather than being undefined.
"""

import math
import statistics
from collections.abc import Sequence
from typing import Literal

from ledgerlens.errors import EmptyInputError

TrendDirection = Literal["up", "down", "stable"]


def mean(values: Sequence[float]) -> float:
    if not values:
        raise EmptyInputError("mean of an empty sample")
    return statistics.fmean(values)


def standard_deviation(values: Sequence[float]) -> float:
    if not values:
        raise EmptyInputError("standard deviation of an empty sample")
    return statistics.pstdev(values)


def z_score_outliers(values: Sequence[float], threshold_sigma: float = 2.0) -> list[int]:
    """Indices of values further than ``threshold_sigma`` deviations from the mean."""
    centre = mean(values)
    spread = standard_deviation(values)
    limit = threshold_sigma * spread
    return [index for index, value in enumerate(values) if abs(value - centre) > limit]


def outlier_score(value: float, centre: float, spread: float) -> float:
    if spread == 0:
        return 0.0
    return abs(value - centre) / spread


def percentage(part: float, whole: float) -> float:
    if whole == 0:
        return 0.0
    result = part / whole * 100
    return result if math.isfinite(result) else 0.0


def trend_direction(current: float, previous: float, band_pct: float = 10) -> TrendDirection:
    if current > previous * (1 + band_pct / 100):
        return "up"
    if current < previous * (1 - band_pct / 100):
        return "down"
    return "stable"
