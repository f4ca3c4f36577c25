"""Small numeric helpers shared by the scoring and shape modules."""

import math
import statistics


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties going towards +infinity (0.5 -> 1, -0.5 -> 0).

    The built-in round() uses banker's rounding, which would make scores
    flip between neighbours on exact halves.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round2(value: float) -> float:
    return round_half_up(value, 2)


def mean(values: list[float]) -> float:
    """Arithmetic mean; 0 for an empty list."""
    if not values:
        return 0.0
    return statistics.fmean(values)


def stddev(values: list[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def coefficient_of_variation(values: list[float]) -> float:
    """stddev / mean, or 0 when the mean is not positive."""
    m = mean(values)
    if m <= 0:
        return 0.0
    return stddev(values) / m


def trend_slope(values: list[float]) -> float:
    """Least-squares slope against index, normalized to [-1, 1].

    The slope is divided by the value range and scaled by the number of
    points. Returns 0 for fewer than three points or a flat series.
    """
    n = len(values)
    if n < 3:
        return 0.0

    x_mean = (n - 1) / 2
    y_mean = mean(values)
    numerator = 0.0
    denominator = 0.0
    for i, y in enumerate(values):
        dx = i - x_mean
        numerator += dx * (y - y_mean)
        denominator += dx * dx

    if denominator == 0:
        return 0.0

    value_range = max(values) - min(values)
    if value_range == 0:
        return 0.0

    return clamp(numerator / denominator / value_range * n, -1.0, 1.0)
