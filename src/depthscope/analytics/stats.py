"""Small numeric helpers shared by the analytics modules."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np


def linear_slope(values: Sequence[float]) -> float:
    """
    Least-squares slope of values against their index (0, 1, 2, ...).

    Returns 0.0 for fewer than two values.
    """
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    slope, _intercept = np.polyfit(x, np.asarray(values, dtype=float), 1)
    return float(slope)


def population_std(values: Sequence[float]) -> float:
    """Population standard deviation, 0.0 when empty."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def decay_weight(age_seconds: float, half_life_seconds: float) -> float:
    """Exponential time-decay weight: 1.0 for fresh data, 0.5 after one half-life."""
    return math.pow(0.5, max(age_seconds, 0.0) / half_life_seconds)


def time_consistency(intervals: Sequence[float]) -> float:
    """
    Regularity of the spacing between observations, in (0, 1].

    1 / (1 + coefficient of variation). Perfectly periodic spacing scores 1.
    Returns 0.0 when there are no intervals or the mean interval is not positive.
    """
    if len(intervals) == 0:
        return 0.0
    arr = np.asarray(intervals, dtype=float)
    mean = float(arr.mean())
    if mean <= 0:
        return 0.0
    return 1.0 / (1.0 + float(arr.std()) / mean)
