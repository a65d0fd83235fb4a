"""Tests for the Orderbook Processor and depth analytics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from depthscope.analytics.depth import bucket_price, cumulative_depth, market_impact, volume_profile
from depthscope.analytics.processor import OrderbookProcessor
from depthscope.config_loader import ProcessorConfig
from depthscope.constants import MERGED_VENUE, SpreadTightness, SpreadTrend, TradeSide
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_book(
    bids: list[tuple[float, float]],
    asks: list[tuple[float, float]],
    *,
    venue: str = "binance",
    ts: datetime = NOW,
) -> OrderbookSnapshot:
    return OrderbookSnapshot(
        symbol="BTCUSDT",
        venue=venue,
        timestamp=ts,
        bids=tuple(PriceLevel(price, qty) for price, qty in bids),
        asks=tuple(PriceLevel(price, qty) for price, qty in asks),
    )


def spread_book(spread: float, ts: datetime = NOW) -> OrderbookSnapshot:
    return make_book([(100.0, 1.0)], [(100.0 + spread, 1.0)], ts=ts)


class TestIngest:
    def test_cumulative_quantities_on_sorted_copy(self) -> None:
        processor = OrderbookProcessor()
        book = make_book(
            [(100.0, 1.0), (102.0, 2.0), (101.0, 3.0)],
            [(104.0, 1.5), (103.0, 0.5)],
        )

        stored = processor.ingest(book, now=NOW)

        assert [lvl.price for lvl in stored.bids] == [102.0, 101.0, 100.0]
        assert [lvl.cumulative for lvl in stored.bids] == [2.0, 5.0, 6.0]
        assert [lvl.price for lvl in stored.asks] == [103.0, 104.0]
        assert stored.asks[-1].cumulative == stored.total_ask_volume
        # Input is left untouched
        assert book.bids[0].cumulative is None

    def test_history_is_capped(self) -> None:
        processor = OrderbookProcessor(ProcessorConfig(max_snapshots=3, max_spread_samples=3))
        for i in range(4):
            processor.ingest(spread_book(1.0, NOW + timedelta(seconds=i)), now=NOW)

        snapshots = processor.get_snapshots("binance", "BTCUSDT")
        assert len(snapshots) == 3
        assert snapshots[0].timestamp == NOW + timedelta(seconds=1)
        assert len(processor.get_spread_samples("binance", "BTCUSDT")) == 3
        assert len(processor.get_historical_data("binance", "BTCUSDT")) == 3

    def test_one_sided_book_adds_no_spread_sample(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(make_book([(100.0, 1.0)], []), now=NOW)

        assert len(processor.get_snapshots("binance", "BTCUSDT")) == 1
        assert processor.get_spread_samples("binance", "BTCUSDT") == ()

    def test_history_points_carry_zones_and_time_coordinate(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=30)), zones=(), now=NOW)

        (point,) = processor.get_historical_data("binance", "BTCUSDT")
        assert point.zones == ()
        assert point.time_coordinate == 5

    @pytest.mark.parametrize(
        "age, expected",
        [(0, 0), (5.9, 0), (7, 1), (150, 25), (299, 49), (1000, 49), (-10, 0)],
    )
    def test_time_coordinate(self, age: float, expected: int) -> None:
        processor = OrderbookProcessor()
        assert processor.time_coordinate(NOW - timedelta(seconds=age), NOW) == expected

    def test_unknown_key_reads_empty(self) -> None:
        processor = OrderbookProcessor()
        assert processor.get_snapshots("kraken", "BTCUSDT") == []
        assert processor.get_latest_snapshot("kraken", "BTCUSDT") is None
        assert processor.get_spread_samples("kraken", "BTCUSDT") == ()

    def test_time_range_filter(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=120)), now=NOW)
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=10)), now=NOW)

        recent = processor.get_snapshots("binance", "BTCUSDT", time_range_seconds=60, now=NOW)
        assert [s.timestamp for s in recent] == [NOW - timedelta(seconds=10)]

    def test_clear_old_data(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=600)), now=NOW)
        processor.ingest(spread_book(1.0, NOW), now=NOW)

        # one snapshot, one spread sample and one history point
        assert processor.clear_old_data(300, now=NOW) == 3
        assert len(processor.get_snapshots("binance", "BTCUSDT")) == 1
        assert processor.clear_old_data(300, now=NOW) == 0


class TestMergedOrderbook:
    def test_sums_identical_prices_across_venues(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(make_book([(100.0, 1.0), (99.0, 2.0)], [(101.0, 1.0)], venue="binance"))
        processor.ingest(make_book([(100.0, 0.5), (98.0, 4.0)], [(101.0, 3.0), (102.0, 1.0)], venue="okx"))

        merged = processor.merged_orderbook("BTCUSDT", ["binance", "okx"])

        assert merged.venue == MERGED_VENUE
        assert [(lvl.price, lvl.quantity) for lvl in merged.bids] == [
            (100.0, 1.5),
            (99.0, 2.0),
            (98.0, 4.0),
        ]
        assert [(lvl.price, lvl.quantity) for lvl in merged.asks] == [(101.0, 4.0), (102.0, 1.0)]
        assert [lvl.cumulative for lvl in merged.bids] == [1.5, 3.5, 7.5]

    def test_top_k_per_side(self) -> None:
        processor = OrderbookProcessor(ProcessorConfig(merged_depth=2))
        processor.ingest(
            make_book([(100.0, 1.0), (99.0, 1.0), (98.0, 1.0)], [(101.0, 1.0), (102.0, 1.0), (103.0, 1.0)])
        )

        merged = processor.merged_orderbook("BTCUSDT", ["binance"])

        assert [lvl.price for lvl in merged.bids] == [100.0, 99.0]
        assert [lvl.price for lvl in merged.asks] == [101.0, 102.0]

    def test_no_data(self) -> None:
        processor = OrderbookProcessor()
        assert processor.merged_orderbook("BTCUSDT", ["binance", "okx"]) is None

    def test_uses_latest_snapshot_only(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(make_book([(100.0, 9.0)], [(101.0, 9.0)], ts=NOW - timedelta(seconds=5)))
        processor.ingest(make_book([(100.0, 1.0)], [(101.0, 1.0)], ts=NOW))

        merged = processor.merged_orderbook("BTCUSDT", ["binance"])
        assert merged.bids[0].quantity == 1.0
        assert merged.timestamp == NOW


class TestSpreadAnalysis:
    def _ingest_spreads(self, processor: OrderbookProcessor, spreads: list[float]) -> None:
        for i, spread in enumerate(spreads):
            processor.ingest(spread_book(spread, NOW + timedelta(seconds=i)), now=NOW)

    def test_widening(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [0.1 * i for i in range(1, 11)])

        analysis = processor.spread_analysis("binance", "BTCUSDT")

        assert analysis.trend == SpreadTrend.WIDENING
        assert analysis.trend_slope == pytest.approx(0.1)

    def test_narrowing(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [0.1 * i for i in range(10, 0, -1)])
        assert processor.spread_analysis("binance", "BTCUSDT").trend == SpreadTrend.NARROWING

    def test_flat_is_stable(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [0.5] * 10)

        analysis = processor.spread_analysis("binance", "BTCUSDT")

        assert analysis.trend == SpreadTrend.STABLE
        assert analysis.volatility == pytest.approx(0.0)
        assert analysis.tightness == SpreadTightness.NORMAL

    def test_trend_uses_recent_window_only(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [5.0 - 0.5 * i for i in range(10)] + [0.5] * 10)
        assert processor.spread_analysis("binance", "BTCUSDT").trend == SpreadTrend.STABLE

    def test_statistics(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [1.0, 3.0, 2.0])

        analysis = processor.spread_analysis("binance", "BTCUSDT")

        assert analysis.current == 2.0
        assert analysis.average == pytest.approx(2.0)
        assert analysis.minimum == 1.0
        assert analysis.maximum == 3.0
        assert analysis.sample_count == 3
        assert [s.value for s in analysis.recent] == [1.0, 3.0, 2.0]

    def test_tight(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [1.0] * 9 + [0.5])
        assert processor.spread_analysis("binance", "BTCUSDT").tightness == SpreadTightness.TIGHT

    def test_wide(self) -> None:
        processor = OrderbookProcessor()
        self._ingest_spreads(processor, [1.0] * 9 + [2.0])
        assert processor.spread_analysis("binance", "BTCUSDT").tightness == SpreadTightness.WIDE

    def test_no_samples(self) -> None:
        analysis = OrderbookProcessor().spread_analysis("binance", "BTCUSDT")
        assert analysis.sample_count == 0
        assert analysis.current == 0.0


class TestVolumeProfile:
    def test_buckets_and_percentages(self) -> None:
        book = make_book([(100.2, 1.0), (99.9, 3.0)], [(101.0, 4.0)])

        profile = volume_profile([book], price_step=1.0, now=NOW)

        assert [b.price for b in profile] == [100.0, 101.0]
        low, high = profile
        assert low.bid_volume == 4.0
        assert low.transactions == 2
        assert low.percentage == pytest.approx(50.0)
        assert high.ask_volume == 4.0
        assert high.venues == ("binance",)

    def test_weighted_volume_decays_with_age(self) -> None:
        fresh = make_book([(100.0, 1.0)], [(105.0, 1.0)], ts=NOW)
        old = make_book([(100.0, 1.0)], [(105.0, 1.0)], ts=NOW - timedelta(seconds=300))

        profile = volume_profile([fresh, old], price_step=1.0, now=NOW, half_life_seconds=300)

        bucket = profile[0]
        assert bucket.total_volume == 2.0
        assert bucket.weighted_volume == pytest.approx(1.5)

    def test_rounds_half_up(self) -> None:
        assert bucket_price(100.5, 1.0) == 101.0
        assert bucket_price(100.49, 1.0) == 100.0
        assert bucket_price(65012.0, 10.0) == 65010.0
        assert bucket_price(0.3, 0.1) == 0.3

    def test_non_positive_step_rejected(self) -> None:
        with pytest.raises(ValueError, match="Price step"):
            volume_profile([], price_step=0)

    def test_processor_default_step(self) -> None:
        processor = OrderbookProcessor(ProcessorConfig(default_price_step=5.0))
        book = make_book([(101.0, 1.0)], [(104.0, 1.0)])
        profile = processor.volume_profile([book], now=NOW)
        assert [b.price for b in profile] == [100.0, 105.0]


class TestCumulativeDepth:
    def test_running_totals_and_imbalance(self) -> None:
        book = make_book([(100.0, 3.0), (99.0, 3.0)], [(101.0, 1.0), (102.0, 1.0)])

        depth = cumulative_depth(book, now=NOW)

        assert [lvl.cumulative for lvl in depth.bids] == [3.0, 6.0]
        assert depth.total_bid_volume == 6.0
        assert depth.total_ask_volume == 2.0
        assert depth.max_depth == 6.0
        assert depth.depth_imbalance == pytest.approx(0.25)

    def test_average_size_uses_order_count(self) -> None:
        book = OrderbookSnapshot(
            symbol="BTCUSDT",
            venue="okx",
            timestamp=NOW,
            bids=(PriceLevel(100.0, 6.0, order_count=3),),
            asks=(PriceLevel(101.0, 2.0),),
        )

        depth = cumulative_depth(book, now=NOW)

        assert depth.bids[0].orders == 3
        assert depth.bids[0].average_size == pytest.approx(2.0)
        assert depth.asks[0].orders == 1
        assert depth.asks[0].average_size == 2.0

    def test_time_weight(self) -> None:
        book = make_book([(100.0, 1.0)], [(101.0, 1.0)], ts=NOW - timedelta(seconds=300))
        depth = cumulative_depth(book, now=NOW, half_life_seconds=300)
        assert depth.bids[0].time_weight == pytest.approx(0.5)


class TestMarketImpact:
    BOOK = make_book(
        [(100.0, 1.0), (99.0, 1.0), (98.0, 1.0)],
        [(101.0, 1.0), (102.0, 1.0), (103.0, 1.0)],
    )

    def test_buy_consumes_full_depth(self) -> None:
        impact = market_impact(self.BOOK, 3.0, TradeSide.BUY)

        assert impact.average_price == pytest.approx(102.0)
        assert impact.best_price == 101.0
        assert impact.worst_price == 103.0
        assert impact.price_impact_pct == pytest.approx(1.0 / 101.0 * 100)
        assert impact.slippage_pct == pytest.approx(2.0 / 101.0 * 100)
        assert impact.levels_consumed == 3
        assert impact.estimated_execution_seconds == pytest.approx(0.3)
        assert impact.is_partial_fill is False

    def test_sell_walks_bids_down(self) -> None:
        impact = market_impact(self.BOOK, 1.5, TradeSide.SELL)

        assert impact.best_price == 100.0
        assert impact.worst_price == 99.0
        assert impact.average_price == pytest.approx((100.0 + 0.5 * 99.0) / 1.5)
        assert impact.levels_consumed == 2

    def test_within_best_level_has_no_impact(self) -> None:
        impact = market_impact(self.BOOK, 0.5, "buy")
        assert impact.price_impact_pct == 0.0
        assert impact.levels_consumed == 1

    def test_partial_fill(self) -> None:
        impact = market_impact(self.BOOK, 5.0, TradeSide.BUY)

        assert impact.is_partial_fill is True
        assert impact.filled_size == pytest.approx(3.0)
        assert impact.unfilled_size == pytest.approx(2.0)
        assert impact.average_price == pytest.approx(102.0)
        assert impact.worst_price == 103.0

    def test_empty_side(self) -> None:
        book = make_book([(100.0, 1.0)], [])
        impact = market_impact(book, 1.0, TradeSide.BUY)
        assert impact.filled_size == 0.0
        assert impact.is_partial_fill is True

    def test_non_positive_size_rejected(self) -> None:
        with pytest.raises(ValueError, match="Trade size"):
            market_impact(self.BOOK, 0, TradeSide.BUY)

    def test_processor_uses_configured_level_time(self) -> None:
        processor = OrderbookProcessor(ProcessorConfig(execution_seconds_per_level=0.25))
        impact = processor.market_impact(self.BOOK, 2.0, "sell")
        assert impact.estimated_execution_seconds == pytest.approx(0.5)


class TestShortHorizonPrediction:
    def test_insufficient_history(self) -> None:
        processor = OrderbookProcessor()
        for i in range(5):
            processor.ingest(spread_book(1.0, NOW - timedelta(seconds=i)), now=NOW)

        prediction = processor.short_horizon_prediction("binance", "BTCUSDT", now=NOW)

        assert prediction.insufficient_data is True
        assert prediction.sample_count == 5

    def test_only_recent_history_used(self) -> None:
        processor = OrderbookProcessor()
        for i in range(12):
            processor.ingest(spread_book(1.0, NOW - timedelta(seconds=1000 + i)), now=NOW)
        for i in range(12):
            processor.ingest(spread_book(1.0, NOW - timedelta(seconds=i)), now=NOW)

        prediction = processor.short_horizon_prediction(
            "binance", "BTCUSDT", horizon_seconds=300, now=NOW
        )

        assert prediction.insufficient_data is False
        assert prediction.sample_count == 12
        assert prediction.features.price_ma == pytest.approx(100.5)


class TestWallClockDefaults:
    def test_time_coordinate_from_current_time(self) -> None:
        processor = OrderbookProcessor()
        with freeze_time(NOW):
            processor.ingest(spread_book(1.0, NOW - timedelta(seconds=150)))

        (point,) = processor.get_historical_data("binance", "BTCUSDT")
        assert point.time_coordinate == 25

    def test_time_range_from_current_time(self) -> None:
        processor = OrderbookProcessor()
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=120)), now=NOW)
        processor.ingest(spread_book(1.0, NOW - timedelta(seconds=10)), now=NOW)

        with freeze_time(NOW):
            assert len(processor.get_snapshots("binance", "BTCUSDT", time_range_seconds=60)) == 1
            assert processor.clear_old_data(60) == 3
