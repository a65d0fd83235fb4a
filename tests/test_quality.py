"""Tests for per-venue data-quality scoring."""

from datetime import datetime, timezone

import pytest

from depthscope.config_loader import QualityConfig
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel
from depthscope.feeds.quality import (
    DataQualityRecord,
    accuracy_score,
    completeness_score,
    decay_reliability,
    freshness_score,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def book(bid: float, ask: float) -> OrderbookSnapshot:
    return OrderbookSnapshot(
        symbol="BTCUSDT",
        venue="test",
        timestamp=NOW,
        bids=(PriceLevel(bid, 1.0),),
        asks=(PriceLevel(ask, 1.0),),
    )


class TestFreshness:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(0.0, 100.0), (1.99, 100.0), (2.0, 80.0), (4.9, 80.0), (5.0, 50.0), (9.9, 50.0), (10.0, 0.0), (600.0, 0.0)],
    )
    def test_bands(self, seconds, expected):
        assert freshness_score(seconds) == expected

    def test_never_updated(self):
        assert freshness_score(None) == 0.0


class TestCompleteness:
    def test_full_book(self):
        assert completeness_score(20, 20, 20) == 100.0

    def test_partial_book(self):
        assert completeness_score(10, 20, 20) == 75.0

    def test_capped_at_100(self):
        assert completeness_score(50, 50, 20) == 100.0


class TestAccuracy:
    def test_plausible_spread(self):
        # 10 / 65005 ~ 0.015%
        assert accuracy_score(book(65000, 65010), QualityConfig()) == 100.0

    def test_degraded_spread(self):
        # 1.5 / 100.75 ~ 1.49%
        assert accuracy_score(book(100.0, 101.5), QualityConfig()) == 80.0

    def test_implausible_spread(self):
        assert accuracy_score(book(100.0, 110.0), QualityConfig()) == 50.0

    def test_suspiciously_tight_spread_is_degraded(self):
        # Spread far below the accurate band floor
        assert accuracy_score(book(100000.0, 100000.0001), QualityConfig()) == 80.0


class TestReliability:
    def test_gain_while_connected_is_capped(self):
        assert decay_reliability(95.0, connected=True) == 96.0
        assert decay_reliability(100.0, connected=True) == 100.0

    def test_decay_while_disconnected_floors_at_zero(self):
        assert decay_reliability(50.0, connected=False) == 45.0
        assert decay_reliability(3.0, connected=False) == 0.0


class TestDataQualityRecord:
    def test_overall_is_mean_of_scores(self):
        record = DataQualityRecord(accuracy=100, completeness=50, freshness=80, reliability=90)
        assert record.overall == pytest.approx(80.0)

    def test_copy_is_independent(self):
        record = DataQualityRecord()
        clone = record.copy()
        clone.consecutive_errors = 5
        assert record.consecutive_errors == 0

    def test_to_dict(self):
        record = DataQualityRecord(latency_ms=12.3456, last_error="boom")
        data = record.to_dict()
        assert data["latency_ms"] == 12.35
        assert data["last_error"] == "boom"
        assert data["overall"] == 100.0
