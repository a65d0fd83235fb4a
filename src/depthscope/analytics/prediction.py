"""Short-horizon directional scoring.

A fixed-weight linear score over five engineered features, squashed with
tanh. Deterministic and explainable: no training, no hidden state.

Features (computed from the most recent history points):
- price_ma: mean of the last 5 mid prices
- volume_ma: mean of the last 5 total quoted volumes
- spread_ma: mean of the last 5 spreads
- volatility: RMS deviation of the last 10 mid prices from price_ma
- momentum: last mid price / price_ma
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from depthscope.data.market_data import utc_now

MOVING_AVERAGE_WINDOW = 5
VOLATILITY_WINDOW = 10

# Scale of each feature before weighting
FEATURE_SCALES = np.array([100_000.0, 1_000.0, 10.0, 1_000.0, 1.0])
FEATURE_WEIGHTS = np.array([0.3, 0.2, 0.25, 0.15, 0.1])

MAX_PRICE_MOVE = 0.02  # price target moves at most +/-2%
MIN_CONFIDENCE = 0.1
CONFIDENCE_SPAN = 0.8


@dataclass(frozen=True)
class PredictionFeatures:
    """Engineered inputs to the directional score."""

    price_ma: float
    volume_ma: float
    spread_ma: float
    volatility: float
    momentum: float

    def as_array(self) -> np.ndarray:
        return np.array(
            [self.price_ma, self.volume_ma, self.spread_ma, self.volatility, self.momentum],
            dtype=float,
        )

    def normalized(self) -> np.ndarray:
        return self.as_array() / FEATURE_SCALES


@dataclass(frozen=True)
class DirectionalPrediction:
    """Direction score in [-1, 1] with confidence and explanatory factors."""

    venue: str
    timestamp: datetime
    horizon_seconds: float
    direction: float
    confidence: float
    price_target: float
    factors: tuple[str, ...]
    features: PredictionFeatures | None = None
    sample_count: int = 0
    insufficient_data: bool = False


def extract_features(
    prices: Sequence[float], volumes: Sequence[float], spreads: Sequence[float]
) -> PredictionFeatures:
    """
    Build the five features from aligned per-point series, oldest first.

    Raises:
        ValueError: If the series are empty or of different lengths.
    """
    if not prices:
        raise ValueError("Cannot extract features from an empty series")
    if not len(prices) == len(volumes) == len(spreads):
        raise ValueError(
            f"Series lengths differ: prices={len(prices)}, volumes={len(volumes)}, "
            f"spreads={len(spreads)}"
        )

    p = np.asarray(prices, dtype=float)
    price_ma = float(p[-MOVING_AVERAGE_WINDOW:].mean())
    volume_ma = float(np.asarray(volumes, dtype=float)[-MOVING_AVERAGE_WINDOW:].mean())
    spread_ma = float(np.asarray(spreads, dtype=float)[-MOVING_AVERAGE_WINDOW:].mean())
    volatility = float(np.sqrt(np.mean((p[-VOLATILITY_WINDOW:] - price_ma) ** 2)))
    momentum = float(p[-1] / price_ma) if price_ma else 1.0

    return PredictionFeatures(
        price_ma=price_ma,
        volume_ma=volume_ma,
        spread_ma=spread_ma,
        volatility=volatility,
        momentum=momentum,
    )


def score_features(features: PredictionFeatures) -> tuple[float, float]:
    """Return (direction in [-1, 1], confidence in [0.1, 0.9])."""
    weighted = float(np.dot(features.normalized(), FEATURE_WEIGHTS))
    direction = math.tanh(weighted)
    confidence = abs(direction) * CONFIDENCE_SPAN + MIN_CONFIDENCE
    return direction, confidence


def explain_features(features: PredictionFeatures) -> tuple[str, ...]:
    """Human-readable factors behind a score."""
    _price, volume, spread, volatility, momentum = features.normalized()
    factors = []
    if momentum > 1.01:
        factors.append("Strong upward momentum")
    if momentum < 0.99:
        factors.append("Downward momentum")
    if volume > 0.8:
        factors.append("High volume activity")
    if spread > 0.5:
        factors.append("Wide spread conditions")
    if volatility > 0.3:
        factors.append("High volatility detected")
    return tuple(factors) or ("Normal market conditions",)


def predict_direction(
    prices: Sequence[float],
    volumes: Sequence[float],
    spreads: Sequence[float],
    *,
    venue: str,
    horizon_seconds: float,
    min_points: int = 10,
    now: datetime | None = None,
) -> DirectionalPrediction:
    """
    Score recent history. With fewer than `min_points` points the result is
    flagged `insufficient_data` with zero direction and zero confidence.
    """
    now = now or utc_now()

    if len(prices) < min_points:
        return DirectionalPrediction(
            venue=venue,
            timestamp=now,
            horizon_seconds=horizon_seconds,
            direction=0.0,
            confidence=0.0,
            price_target=0.0,
            factors=("Insufficient data",),
            sample_count=len(prices),
            insufficient_data=True,
        )

    features = extract_features(prices, volumes, spreads)
    direction, confidence = score_features(features)

    return DirectionalPrediction(
        venue=venue,
        timestamp=now,
        horizon_seconds=horizon_seconds,
        direction=direction,
        confidence=confidence,
        price_target=features.price_ma * (1 + direction * MAX_PRICE_MOVE),
        factors=explain_features(features),
        features=features,
        sample_count=len(prices),
    )
