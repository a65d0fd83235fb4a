"""Spread statistics over a bounded sample window."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from depthscope.analytics.stats import linear_slope, population_std
from depthscope.config_loader import ProcessorConfig
from depthscope.constants import SpreadTightness, SpreadTrend


@dataclass(frozen=True)
class SpreadSample:
    """One best-ask minus best-bid observation."""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class SpreadAnalysis:
    """Summary of a venue's recent spread behaviour."""

    current: float
    average: float
    minimum: float
    maximum: float
    volatility: float
    trend: SpreadTrend
    trend_slope: float
    tightness: SpreadTightness
    sample_count: int
    recent: tuple[SpreadSample, ...]

    @classmethod
    def empty(cls) -> SpreadAnalysis:
        return cls(
            current=0.0,
            average=0.0,
            minimum=0.0,
            maximum=0.0,
            volatility=0.0,
            trend=SpreadTrend.STABLE,
            trend_slope=0.0,
            tightness=SpreadTightness.NORMAL,
            sample_count=0,
            recent=(),
        )


def classify_trend(slope: float, threshold: float) -> SpreadTrend:
    if slope > threshold:
        return SpreadTrend.WIDENING
    elif slope < -threshold:
        return SpreadTrend.NARROWING
    return SpreadTrend.STABLE


def classify_tightness(
    current: float, average: float, tight_ratio: float, wide_ratio: float
) -> SpreadTightness:
    if current < average * tight_ratio:
        return SpreadTightness.TIGHT
    elif current > average * wide_ratio:
        return SpreadTightness.WIDE
    return SpreadTightness.NORMAL


def analyze_spread(samples: Sequence[SpreadSample], config: ProcessorConfig) -> SpreadAnalysis:
    """
    Current/average/min/max spread over all retained samples.

    Trend is the least-squares slope over the most recent `trend_window`
    samples; tightness compares the current spread to the running average.
    """
    if not samples:
        return SpreadAnalysis.empty()

    values = [s.value for s in samples]
    current = values[-1]
    average = sum(values) / len(values)
    slope = linear_slope(values[-config.trend_window :])

    return SpreadAnalysis(
        current=current,
        average=average,
        minimum=min(values),
        maximum=max(values),
        volatility=population_std(values),
        trend=classify_trend(slope, config.trend_threshold),
        trend_slope=slope,
        tightness=classify_tightness(current, average, config.tight_ratio, config.wide_ratio),
        sample_count=len(values),
        recent=tuple(samples[-config.reported_spread_samples :]),
    )
