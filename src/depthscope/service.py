"""Market depth service: wires feeds into analytics and serves read-only queries."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from depthscope.analytics.depth import CumulativeDepth, MarketImpact, VolumeProfileBucket
from depthscope.analytics.prediction import DirectionalPrediction
from depthscope.analytics.pressure_zones import (
    HeatmapCell,
    Imbalance,
    PressureZone,
    PressureZoneDetector,
    ZoneDirectionForecast,
)
from depthscope.analytics.processor import HistoricalDataPoint, OrderbookProcessor
from depthscope.analytics.spread import SpreadAnalysis
from depthscope.config_loader import AppConfig
from depthscope.constants import DEFAULT_SYMBOL, TradeSide
from depthscope.data.market_data import OrderbookSnapshot, utc_now
from depthscope.feeds.manager import FeedManager, Subscriber

logger = logging.getLogger(__name__)


class MarketDepthService:
    """
    Subscribes to the Feed Manager and drives the detector and processor.

    For every snapshot the detector runs first and its zones are recorded
    with the snapshot in the processor's history. All query methods are pure
    reads over the latest ingested state.
    """

    def __init__(
        self,
        config: AppConfig,
        feed_manager: FeedManager,
        processor: OrderbookProcessor | None = None,
        detector: PressureZoneDetector | None = None,
    ) -> None:
        self.config = config
        self.feed_manager = feed_manager
        self.processor = processor or OrderbookProcessor(config.processor)
        self.detector = detector or PressureZoneDetector(config.detector)

        self._symbols = {v.name: v.symbol for v in config.feeds.venues}
        self._latest: dict[str, OrderbookSnapshot] = {}
        self._zones: dict[str, list[PressureZone]] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self.snapshots_processed = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self.attach()
        await self.feed_manager.start()

    async def stop(self) -> None:
        self.detach()
        await self.feed_manager.shutdown()

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.feed_manager.subscribe(self.on_snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Push interface for external consumers: one call per validated snapshot."""
        return self.feed_manager.subscribe(callback)

    def on_snapshot(self, snapshot: OrderbookSnapshot) -> None:
        zones = self.detector.detect(snapshot)
        stored = self.processor.ingest(snapshot, zones)
        self._latest[snapshot.venue] = stored
        self._zones[snapshot.venue] = zones
        self.snapshots_processed += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _symbol_for(self, venue: str) -> str:
        latest = self._latest.get(venue)
        if latest is not None:
            return latest.symbol
        return self._symbols.get(venue, DEFAULT_SYMBOL)

    @property
    def venues(self) -> list[str]:
        return self.feed_manager.venues

    def get_venue_data(self, venue: str) -> OrderbookSnapshot | None:
        return self._latest.get(venue)

    def get_pressure_zones(self, venue: str) -> list[PressureZone]:
        return list(self._zones.get(venue, []))

    def get_merged_orderbook(
        self, symbol: str | None = None, venues: Sequence[str] | None = None
    ) -> OrderbookSnapshot | None:
        venues = list(venues) if venues is not None else self.venues
        symbol = symbol or (self._symbol_for(venues[0]) if venues else DEFAULT_SYMBOL)
        return self.processor.merged_orderbook(symbol, venues)

    def get_historical_snapshots(
        self,
        venue: str,
        time_range_seconds: float | None = None,
        now: datetime | None = None,
    ) -> list[HistoricalDataPoint]:
        return self.processor.get_historical_data(
            venue, self._symbol_for(venue), time_range_seconds, now=now
        )

    def get_volume_profile(
        self,
        venue: str,
        time_range_seconds: float | None = None,
        price_step: float | None = None,
        now: datetime | None = None,
    ) -> list[VolumeProfileBucket]:
        now = now or utc_now()
        snapshots = self.processor.get_snapshots(
            venue, self._symbol_for(venue), time_range_seconds, now=now
        )
        return self.processor.volume_profile(snapshots, price_step, now=now)

    def get_spread_analysis(self, venue: str) -> SpreadAnalysis:
        return self.processor.spread_analysis(venue, self._symbol_for(venue))

    def get_cumulative_depth(self, venue: str, now: datetime | None = None) -> CumulativeDepth | None:
        latest = self._latest.get(venue)
        return self.processor.cumulative_depth(latest, now=now) if latest else None

    def get_market_impact(
        self, venue: str, size: float, side: TradeSide | str
    ) -> MarketImpact | None:
        latest = self._latest.get(venue)
        return self.processor.market_impact(latest, size, side) if latest else None

    def get_imbalance(self, venue: str) -> Imbalance | None:
        latest = self._latest.get(venue)
        return self.detector.detect_imbalance(latest) if latest else None

    def get_heatmap(
        self, venue: str, window_seconds: float = 300.0, now: datetime | None = None
    ) -> list[HeatmapCell]:
        now = now or utc_now()
        snapshots = self.processor.get_snapshots(
            venue, self._symbol_for(venue), window_seconds, now=now
        )
        return self.detector.heatmap(snapshots, window_seconds=window_seconds, now=now)

    def get_prediction(
        self, venue: str, horizon_seconds: float = 300.0, now: datetime | None = None
    ) -> DirectionalPrediction:
        return self.processor.short_horizon_prediction(
            venue, self._symbol_for(venue), horizon_seconds, now=now
        )

    def get_zone_directions(self, venue: str) -> list[ZoneDirectionForecast]:
        return self.detector.predict_zone_directions(self.get_pressure_zones(venue))

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Connection state, freshness and quality per venue."""
        states = self.feed_manager.get_detailed_status()
        freshness = self.feed_manager.get_data_freshness()
        quality = self.feed_manager.get_data_quality()
        return {
            venue: {
                "state": states[venue].value,
                "seconds_since_update": freshness[venue],
                "quality": quality[venue].to_dict(),
                "zones": len(self._zones.get(venue, [])),
            }
            for venue in states
        }
