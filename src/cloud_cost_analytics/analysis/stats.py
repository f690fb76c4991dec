"""Statistical primitives shared by the detector, delta analyzer and engine."""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable, Sequence


def finite_values(values: Iterable[float]) -> list[float]:
    """Drop NaN and infinite values."""
    return [v for v in values if math.isfinite(v)]


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    if not values:
        return 0.0
    return statistics.fmean(values)


def median(values: Sequence[float]) -> float:
    """
    Median of a sequence.

    Odd length returns the middle element, even length the average of the
    two middle elements. Empty input returns 0.
    """
    if not values:
        return 0.0
    return float(statistics.median(values))


def median_absolute_deviation(
    values: Sequence[float], center: float | None = None
) -> float:
    """Median of absolute deviations from ``center`` (the median by default)."""
    if center is None:
        center = median(values)
    return median([abs(v - center) for v in values])


def mean_absolute_deviation(values: Sequence[float], center: float) -> float:
    """Mean of absolute deviations from ``center``."""
    return mean([abs(v - center) for v in values])


def linear_trend(values: Sequence[float]) -> float:
    """
    Ordinary least squares slope of value against index 0..n-1.

    slope = (n*Σxy - Σx*Σy) / (n*Σx² - (Σx)²)

    Returns 0 when fewer than two values are given.
    """
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_xx = (n - 1) * n * (2 * n - 1) / 6

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation, 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def volatility(values: Sequence[float]) -> float:
    """
    Coefficient of variation (std_dev / mean).

    Returns 0 when there are fewer than two values or the mean is not positive.
    """
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    if avg <= 0:
        return 0.0
    return std_dev(values) / avg
