"""Orderbook Processor - bounded per-venue history and depth analytics."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from depthscope.analytics.depth import (
    CumulativeDepth,
    MarketImpact,
    VolumeProfileBucket,
    cumulative_depth,
    enrich_snapshot,
    market_impact,
    volume_profile,
    with_cumulative,
)
from depthscope.analytics.prediction import DirectionalPrediction, predict_direction
from depthscope.analytics.pressure_zones import PressureZone
from depthscope.analytics.spread import SpreadAnalysis, SpreadSample, analyze_spread
from depthscope.config_loader import ProcessorConfig
from depthscope.constants import MERGED_VENUE, TradeSide
from depthscope.data.history import BoundedHistory
from depthscope.data.market_data import (
    OrderbookSnapshot,
    PriceLevel,
    age_seconds,
    history_key,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoricalDataPoint:
    """One ingested snapshot with the zones detected on it."""

    timestamp: datetime
    snapshot: OrderbookSnapshot
    zones: tuple[PressureZone, ...]
    time_coordinate: int  # discrete time slice for layout only


class OrderbookProcessor:
    """
    Maintains bounded history per venue+symbol and derives analytics.

    Three stores share the same key and cap (FIFO eviction):
    - snapshots with cumulative quantities
    - spread samples
    - historical data points (snapshot + zones + time coordinate)

    The ingest path is the single writer for a key; every read returns
    immutable copies.

    Usage:
        processor = OrderbookProcessor(config.processor)
        processor.ingest(snapshot, zones)
        analysis = processor.spread_analysis("binance", "BTCUSDT")
    """

    def __init__(self, config: ProcessorConfig | None = None) -> None:
        self.config = config or ProcessorConfig()
        self._snapshots: dict[str, BoundedHistory[OrderbookSnapshot]] = {}
        self._spreads: dict[str, BoundedHistory[SpreadSample]] = {}
        self._points: dict[str, BoundedHistory[HistoricalDataPoint]] = {}

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(
        self,
        snapshot: OrderbookSnapshot,
        zones: Iterable[PressureZone] = (),
        now: datetime | None = None,
    ) -> OrderbookSnapshot:
        """
        Record one snapshot. Returns the stored copy with cumulative quantities.

        A one-sided snapshot is stored but contributes no spread sample.
        """
        now = now or utc_now()
        key = snapshot.key
        enriched = enrich_snapshot(snapshot)

        self._store(self._snapshots, key, self.config.max_snapshots).append(enriched)

        if snapshot.bids and snapshot.asks:
            self._store(self._spreads, key, self.config.max_spread_samples).append(
                SpreadSample(timestamp=snapshot.timestamp, value=snapshot.spread)
            )

        self._store(self._points, key, self.config.max_snapshots).append(
            HistoricalDataPoint(
                timestamp=snapshot.timestamp,
                snapshot=enriched,
                zones=tuple(zones),
                time_coordinate=self.time_coordinate(snapshot.timestamp, now),
            )
        )
        return enriched

    @staticmethod
    def _store(stores: dict[str, BoundedHistory], key: str, cap: int) -> BoundedHistory:
        store = stores.get(key)
        if store is None:
            store = stores[key] = BoundedHistory(cap)
        return store

    def time_coordinate(self, timestamp: datetime, now: datetime | None = None) -> int:
        """Map snapshot age linearly onto [0, time_slices - 1]; 0 is newest."""
        now = now or utc_now()
        age = age_seconds(timestamp, now)
        slices = self.config.time_slices
        index = int(age / self.config.time_window_seconds * slices)
        return min(max(index, 0), slices - 1)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def keys(self) -> list[str]:
        return list(self._snapshots)

    def get_snapshots(
        self,
        venue: str,
        symbol: str,
        time_range_seconds: float | None = None,
        now: datetime | None = None,
    ) -> list[OrderbookSnapshot]:
        """Stored snapshots, oldest first, optionally limited to a trailing window."""
        store = self._snapshots.get(history_key(venue, symbol))
        if store is None:
            return []
        if not time_range_seconds:
            return list(store.snapshot())
        cutoff = (now or utc_now()) - timedelta(seconds=time_range_seconds)
        return store.since(cutoff, lambda s: s.timestamp)

    def get_historical_data(
        self,
        venue: str,
        symbol: str,
        time_range_seconds: float | None = None,
        now: datetime | None = None,
    ) -> list[HistoricalDataPoint]:
        store = self._points.get(history_key(venue, symbol))
        if store is None:
            return []
        if not time_range_seconds:
            return list(store.snapshot())
        cutoff = (now or utc_now()) - timedelta(seconds=time_range_seconds)
        return store.since(cutoff, lambda p: p.timestamp)

    def get_latest_snapshot(self, venue: str, symbol: str) -> OrderbookSnapshot | None:
        store = self._snapshots.get(history_key(venue, symbol))
        return store.latest() if store else None

    def get_spread_samples(self, venue: str, symbol: str) -> tuple[SpreadSample, ...]:
        store = self._spreads.get(history_key(venue, symbol))
        return store.snapshot() if store else ()

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def merged_orderbook(self, symbol: str, venues: Sequence[str]) -> OrderbookSnapshot | None:
        """
        Sum quantities at identical prices across each venue's latest snapshot.

        Returns None when none of the venues has data for the symbol.
        """
        latest = [
            snap
            for snap in (self.get_latest_snapshot(venue, symbol) for venue in venues)
            if snap is not None
        ]
        if not latest:
            return None

        depth = self.config.merged_depth
        bids = _merge_levels((lvl for s in latest for lvl in s.bids), descending=True)[:depth]
        asks = _merge_levels((lvl for s in latest for lvl in s.asks), descending=False)[:depth]

        return OrderbookSnapshot(
            symbol=symbol,
            venue=MERGED_VENUE,
            timestamp=max(s.timestamp for s in latest),
            bids=with_cumulative(bids),
            asks=with_cumulative(asks),
        )

    def spread_analysis(self, venue: str, symbol: str) -> SpreadAnalysis:
        return analyze_spread(self.get_spread_samples(venue, symbol), self.config)

    def volume_profile(
        self,
        snapshots: Iterable[OrderbookSnapshot],
        price_step: float | None = None,
        now: datetime | None = None,
    ) -> list[VolumeProfileBucket]:
        return volume_profile(
            snapshots,
            price_step or self.config.default_price_step,
            now=now,
            half_life_seconds=self.config.decay_half_life_seconds,
        )

    def cumulative_depth(
        self, snapshot: OrderbookSnapshot, now: datetime | None = None
    ) -> CumulativeDepth:
        return cumulative_depth(
            snapshot, now=now, half_life_seconds=self.config.decay_half_life_seconds
        )

    def market_impact(
        self, snapshot: OrderbookSnapshot, size: float, side: TradeSide | str
    ) -> MarketImpact:
        return market_impact(
            snapshot,
            size,
            TradeSide(side),
            seconds_per_level=self.config.execution_seconds_per_level,
        )

    def short_horizon_prediction(
        self,
        venue: str,
        symbol: str,
        horizon_seconds: float = 300.0,
        now: datetime | None = None,
    ) -> DirectionalPrediction:
        """Directional score over the last 2 x horizon of history."""
        now = now or utc_now()
        points = self.get_historical_data(venue, symbol, horizon_seconds * 2, now=now)
        books = [p.snapshot for p in points if p.snapshot.bids and p.snapshot.asks]

        return predict_direction(
            [b.mid_price for b in books],
            [b.total_bid_volume + b.total_ask_volume for b in books],
            [b.spread for b in books],
            venue=venue,
            horizon_seconds=horizon_seconds,
            min_points=self.config.min_prediction_points,
            now=now,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_old_data(self, max_age_seconds: float, now: datetime | None = None) -> int:
        """Drop entries older than max_age from every store. Returns entries removed."""
        cutoff = (now or utc_now()) - timedelta(seconds=max_age_seconds)
        removed = 0
        for store in self._snapshots.values():
            removed += store.retain(lambda s: s.timestamp >= cutoff)
        for store in self._spreads.values():
            removed += store.retain(lambda s: s.timestamp >= cutoff)
        for store in self._points.values():
            removed += store.retain(lambda p: p.timestamp >= cutoff)
        if removed:
            logger.info(f"Cleared {removed} entries older than {max_age_seconds:.0f}s")
        return removed


def _merge_levels(levels: Iterable[PriceLevel], descending: bool) -> list[PriceLevel]:
    quantities: dict[float, float] = {}
    for level in levels:
        quantities[level.price] = quantities.get(level.price, 0.0) + level.quantity
    return [
        PriceLevel(price=price, quantity=quantities[price])
        for price in sorted(quantities, reverse=descending)
    ]
