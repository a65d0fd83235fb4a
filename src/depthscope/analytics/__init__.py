"""Streaming order-book analytics.

Processor and detector each own an independent bounded history and are
driven from the same snapshot stream.
"""

from depthscope.analytics.depth import CumulativeDepth, MarketImpact, VolumeProfileBucket
from depthscope.analytics.prediction import DirectionalPrediction, PredictionFeatures
from depthscope.analytics.pressure_zones import (
    HeatmapCell,
    Imbalance,
    PressureZone,
    PressureZoneDetector,
    ZoneDirectionForecast,
    ZoneForecast,
)
from depthscope.analytics.processor import HistoricalDataPoint, OrderbookProcessor
from depthscope.analytics.spread import SpreadAnalysis, SpreadSample

__all__ = [
    "CumulativeDepth",
    "DirectionalPrediction",
    "HeatmapCell",
    "HistoricalDataPoint",
    "Imbalance",
    "MarketImpact",
    "OrderbookProcessor",
    "PredictionFeatures",
    "PressureZone",
    "PressureZoneDetector",
    "SpreadAnalysis",
    "SpreadSample",
    "VolumeProfileBucket",
    "ZoneDirectionForecast",
    "ZoneForecast",
]
