"""Per-venue data-quality scoring.

Scores are 0-100:
- freshness: discrete bands by time since the last good update
- reliability: +1 per monitor tick while connected, -5 otherwise
- accuracy: spread-as-percent-of-mid plausibility
- completeness: levels received vs levels requested
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from depthscope.config_loader import QualityConfig
from depthscope.data.market_data import OrderbookSnapshot

# (max seconds since update, score); anything older scores 0
FRESHNESS_BANDS: tuple[tuple[float, float], ...] = ((2.0, 100.0), (5.0, 80.0), (10.0, 50.0))

RELIABILITY_GAIN = 1.0
RELIABILITY_PENALTY = 5.0


@dataclass
class DataQualityRecord:
    """Mutable quality state for one venue, owned by the Feed Manager."""

    latency_ms: float = 0.0
    accuracy: float = 100.0
    completeness: float = 100.0
    freshness: float = 100.0
    reliability: float = 100.0
    consecutive_errors: int = 0
    last_error: str | None = None

    @property
    def overall(self) -> float:
        """Composite score: mean of the four 0-100 components."""
        return (self.accuracy + self.completeness + self.freshness + self.reliability) / 4.0

    def copy(self) -> DataQualityRecord:
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "latency_ms": round(self.latency_ms, 2),
            "accuracy": self.accuracy,
            "completeness": round(self.completeness, 2),
            "freshness": self.freshness,
            "reliability": self.reliability,
            "consecutive_errors": self.consecutive_errors,
            "last_error": self.last_error,
            "overall": round(self.overall, 2),
        }


def freshness_score(seconds_since_update: float | None) -> float:
    """Band the age of the last good update; never-updated venues score 0."""
    if seconds_since_update is None:
        return 0.0
    for limit, score in FRESHNESS_BANDS:
        if seconds_since_update < limit:
            return score
    return 0.0


def completeness_score(bid_levels: int, ask_levels: int, expected_levels: int) -> float:
    """Percent of requested levels present on both sides, capped at 100."""
    if expected_levels <= 0:
        return 100.0
    return min(100.0, (bid_levels + ask_levels) / (expected_levels * 2) * 100.0)


def accuracy_score(snapshot: OrderbookSnapshot, config: QualityConfig) -> float:
    """Plausibility of the quoted spread relative to the midpoint."""
    if not snapshot.bids or not snapshot.asks:
        return 0.0

    mid = snapshot.mid_price
    if mid <= 0:
        return 0.0
    spread_pct = snapshot.spread / mid * 100.0

    if config.accurate_spread_pct_min <= spread_pct <= config.accurate_spread_pct_max:
        return 100.0
    elif spread_pct <= config.degraded_spread_pct_max:
        return 80.0
    else:
        return 50.0


def decay_reliability(reliability: float, connected: bool) -> float:
    """Periodic reliability update: slow gain while connected, faster decay otherwise."""
    if connected:
        return min(100.0, reliability + RELIABILITY_GAIN)
    return max(0.0, reliability - RELIABILITY_PENALTY)
