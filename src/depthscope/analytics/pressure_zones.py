"""Pressure Zone Detector - liquidity clusters, imbalance and depth heatmaps.

A pressure zone is a contiguous run of price levels holding a large share
of one side's quoted volume. Zones act as support (bids) or resistance
(asks) and are tracked over time to forecast whether they are building up
or thinning out.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from depthscope.analytics.stats import linear_slope, time_consistency
from depthscope.config_loader import DetectorConfig
from depthscope.constants import (
    BookSide,
    ImbalanceDirection,
    MarketBias,
    ZoneDirection,
    ZoneMovement,
)
from depthscope.data.history import BoundedHistory
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel, age_seconds, utc_now

logger = logging.getLogger(__name__)

# Zone direction forecast
DIRECTION_MATCH_PCT = 0.01
DIRECTION_MIN_MATCHES = 5
DIRECTION_HORIZON_SECONDS = 300.0
MAX_CONFIDENCE = 0.95
UNMATCHED_CONFIDENCE = 0.3
PRICE_TREND_EPSILON = 1e-9


@dataclass(frozen=True)
class ZoneForecast:
    """Expected evolution of a zone based on similar recent zones."""

    movement: ZoneMovement
    confidence: float
    matches: int = 0


@dataclass(frozen=True)
class PressureZone:
    """A cluster of levels concentrating volume on one side of the book."""

    venue: str
    symbol: str
    side: BookSide
    price_start: float
    price_end: float
    volume: float
    intensity: float
    level_count: int
    timestamp: datetime
    forecast: ZoneForecast

    @property
    def midpoint(self) -> float:
        return (self.price_start + self.price_end) / 2.0


@dataclass(frozen=True)
class Imbalance:
    """Top-of-book volume imbalance."""

    ratio: float  # bid share of top-N volume
    direction: ImbalanceDirection
    intensity: float  # 0 balanced .. 1 one-sided
    bias: MarketBias
    bid_volume: float
    ask_volume: float


@dataclass(frozen=True)
class HeatmapCell:
    """Volume in one (time slot, price slot) cell for one side."""

    time_slot: int
    price_slot: int
    price_level: float
    side: BookSide
    volume: float
    intensity: float
    temperature: float


@dataclass(frozen=True)
class ZoneDirectionForecast:
    """Price direction expected around a current zone."""

    zone: PressureZone
    direction: ZoneDirection
    confidence: float
    horizon_seconds: float
    relative_volume: float
    factors: tuple[str, ...]


def weighted_distance(anchor: PriceLevel, candidate: PriceLevel) -> float:
    """
    Relative price distance inflated as the two quantities diverge.

    Equal quantities leave the raw distance unchanged; very unequal
    quantities up to double it.
    """
    price_distance = abs(candidate.price - anchor.price) / anchor.price
    balance = min(anchor.quantity, candidate.quantity) / max(anchor.quantity, candidate.quantity)
    return price_distance * (1 + (1 - balance))


def cluster_levels(levels: Iterable[PriceLevel], max_distance: float) -> list[list[PriceLevel]]:
    """
    Greedy single-pass clustering in ascending price order.

    Each level is compared with the last level of the open cluster and
    joins it when the weighted distance is within max_distance. Clusters are
    never re-merged after the pass, so the result depends on level order.
    """
    ordered = sorted(levels, key=lambda lvl: lvl.price)
    if not ordered:
        return []

    clusters: list[list[PriceLevel]] = []
    current = [ordered[0]]
    for level in ordered[1:]:
        if weighted_distance(current[-1], level) <= max_distance:
            current.append(level)
        else:
            clusters.append(current)
            current = [level]
    clusters.append(current)
    return clusters


def cluster_intensity(cluster: Sequence[PriceLevel], side_volume: float) -> float:
    """
    volume_ratio * density * concentration * 100

    density is log(level count), or 1 for a single level; concentration is
    the largest level quantity over the cluster's mean level quantity.
    """
    volume = sum(lvl.quantity for lvl in cluster)
    if side_volume <= 0 or volume <= 0:
        return 0.0
    count = len(cluster)
    density = math.log(count) if count > 1 else 1.0
    concentration = max(lvl.quantity for lvl in cluster) / (volume / count)
    return volume / side_volume * density * concentration * 100.0


class PressureZoneDetector:
    """
    Detects pressure zones in snapshots and keeps a bounded, cross-venue
    history of every zone it has emitted. The history is the only input to
    movement forecasts.
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self.config = config or DetectorConfig()
        self._history: BoundedHistory[PressureZone] = BoundedHistory(self.config.max_history)

    @property
    def history(self) -> tuple[PressureZone, ...]:
        return self._history.snapshot()

    def clear_history(self) -> None:
        self._history.clear()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, snapshot: OrderbookSnapshot) -> list[PressureZone]:
        """
        Detect zones on both sides, sorted by intensity descending.

        Forecasts are computed against the history as it stood before this
        snapshot; the new zones are appended afterwards.
        """
        zones = self._detect_side(snapshot, snapshot.bids, BookSide.BID)
        zones.extend(self._detect_side(snapshot, snapshot.asks, BookSide.ASK))
        zones.sort(key=lambda z: z.intensity, reverse=True)

        self._history.extend(zones)
        if zones:
            logger.debug(f"{snapshot.venue}: {len(zones)} pressure zones detected")
        return zones

    def _detect_side(
        self, snapshot: OrderbookSnapshot, levels: Sequence[PriceLevel], side: BookSide
    ) -> list[PressureZone]:
        if not levels:
            return []

        side_volume = sum(lvl.quantity for lvl in levels)
        min_volume = side_volume * self.config.volume_threshold

        zones = []
        for cluster in cluster_levels(levels, self.config.cluster_distance):
            volume = sum(lvl.quantity for lvl in cluster)
            if volume < min_volume:
                continue
            zones.append(
                PressureZone(
                    venue=snapshot.venue,
                    symbol=snapshot.symbol,
                    side=side,
                    price_start=cluster[0].price,
                    price_end=cluster[-1].price,
                    volume=volume,
                    intensity=cluster_intensity(cluster, side_volume),
                    level_count=len(cluster),
                    timestamp=snapshot.timestamp,
                    forecast=self._forecast(cluster, side, snapshot.timestamp),
                )
            )
        return zones

    def _forecast(
        self, cluster: Sequence[PriceLevel], side: BookSide, timestamp: datetime
    ) -> ZoneForecast:
        avg_price = sum(lvl.price for lvl in cluster) / len(cluster)

        similar = [
            zone
            for zone in self._history
            if zone.side == side
            and abs(zone.midpoint - avg_price) / avg_price < self.config.similarity_pct
            and age_seconds(zone.timestamp, timestamp) < self.config.similarity_window_seconds
        ]

        if len(similar) < self.config.min_matches:
            return ZoneForecast(ZoneMovement.STABLE, UNMATCHED_CONFIDENCE, len(similar))

        recent = similar[-self.config.trend_lookback :]
        deltas = [b.intensity - a.intensity for a, b in zip(recent, recent[1:])]
        trend = sum(deltas) / len(deltas)
        confidence = min(len(similar) / 10, MAX_CONFIDENCE)

        threshold = self.config.intensity_trend_threshold
        if trend > threshold:
            movement = ZoneMovement.STRENGTHENING
        elif trend < -threshold:
            movement = ZoneMovement.WEAKENING
        else:
            movement = ZoneMovement.STABLE
        return ZoneForecast(movement, confidence, len(similar))

    # ------------------------------------------------------------------
    # Imbalance
    # ------------------------------------------------------------------

    def detect_imbalance(self, snapshot: OrderbookSnapshot) -> Imbalance:
        """Bid share of the top-N levels, classified against the bullish/bearish band."""
        depth = self.config.imbalance_depth
        bid_volume = sum(lvl.quantity for lvl in snapshot.bids[:depth])
        ask_volume = sum(lvl.quantity for lvl in snapshot.asks[:depth])
        total = bid_volume + ask_volume

        if total <= 0:
            return Imbalance(
                ratio=0.5,
                direction=ImbalanceDirection.BALANCED,
                intensity=0.0,
                bias=MarketBias.NEUTRAL,
                bid_volume=bid_volume,
                ask_volume=ask_volume,
            )

        ratio = bid_volume / total
        if ratio > self.config.bullish_ratio:
            direction, bias = ImbalanceDirection.BID, MarketBias.BULLISH
        elif ratio < self.config.bearish_ratio:
            direction, bias = ImbalanceDirection.ASK, MarketBias.BEARISH
        else:
            direction, bias = ImbalanceDirection.BALANCED, MarketBias.NEUTRAL

        return Imbalance(
            ratio=ratio,
            direction=direction,
            intensity=abs(ratio - 0.5) * 2,
            bias=bias,
            bid_volume=bid_volume,
            ask_volume=ask_volume,
        )

    # ------------------------------------------------------------------
    # Heatmap
    # ------------------------------------------------------------------

    def heatmap(
        self,
        snapshots: Iterable[OrderbookSnapshot],
        window_seconds: float = 300.0,
        now: datetime | None = None,
    ) -> list[HeatmapCell]:
        """
        Aggregate quoted volume into a time x price grid.

        The window ending at `now` is split into `heatmap_time_slots` slots;
        the price range observed in that window into `heatmap_price_slots`
        slots. Only non-empty cells are returned, ordered by time slot, then
        price slot, bids before asks.
        """
        now = now or utc_now()
        time_slots = self.config.heatmap_time_slots
        price_slots = self.config.heatmap_price_slots
        slot_seconds = window_seconds / time_slots

        in_window = []
        for snapshot in snapshots:
            age = age_seconds(snapshot.timestamp, now)
            if 0 <= age <= window_seconds:
                in_window.append((snapshot, age))
        if not in_window:
            return []

        prices = [lvl.price for snap, _ in in_window for lvl in (*snap.bids, *snap.asks)]
        if not prices:
            return []
        low, high = min(prices), max(prices)
        price_step = (high - low) / price_slots if high > low else 1.0

        cells: dict[tuple[int, int, BookSide], float] = {}
        for snapshot, age in in_window:
            time_slot = min(int((window_seconds - age) / slot_seconds), time_slots - 1)
            for side, levels in ((BookSide.BID, snapshot.bids), (BookSide.ASK, snapshot.asks)):
                for level in levels:
                    price_slot = min(int((level.price - low) / price_step), price_slots - 1)
                    key = (time_slot, price_slot, side)
                    cells[key] = cells.get(key, 0.0) + level.quantity

        side_order = {BookSide.BID: 0, BookSide.ASK: 1}
        normalizer = self.config.heatmap_volume_normalizer
        result = []
        for (time_slot, price_slot, side) in sorted(
            cells, key=lambda k: (k[0], k[1], side_order[k[2]])
        ):
            volume = cells[(time_slot, price_slot, side)]
            result.append(
                HeatmapCell(
                    time_slot=time_slot,
                    price_slot=price_slot,
                    price_level=low + price_slot * price_step,
                    side=side,
                    volume=volume,
                    intensity=min(volume / normalizer, 1.0),
                    temperature=min(math.log(volume + 1) * 10 / 100, 1.0),
                )
            )
        return result

    # ------------------------------------------------------------------
    # Direction forecast
    # ------------------------------------------------------------------

    def predict_zone_directions(
        self,
        current_zones: Iterable[PressureZone],
        history: Sequence[PressureZone] | None = None,
    ) -> list[ZoneDirectionForecast]:
        """
        Forecast price direction around each current zone.

        Only zones with at least five same-side historical zones starting
        within 1% of their own start price get a forecast.
        """
        history = self.history if history is None else history
        forecasts = []

        for zone in current_zones:
            similar = [
                past
                for past in history
                if past.side == zone.side
                and abs(past.price_start - zone.price_start) / zone.price_start < DIRECTION_MATCH_PCT
            ]
            if len(similar) < DIRECTION_MIN_MATCHES:
                continue
            similar.sort(key=lambda z: z.timestamp)
            forecasts.append(score_zone_direction(zone, similar))

        return forecasts


def score_zone_direction(
    zone: PressureZone, similar: Sequence[PressureZone]
) -> ZoneDirectionForecast:
    """Fixed-weight bullish/bearish score from the trend of similar zones (oldest first)."""
    volume_trend = linear_slope([z.volume for z in similar])
    intensity_trend = linear_slope([z.intensity for z in similar])
    price_trend = linear_slope([z.midpoint for z in similar])
    intervals = [
        (b.timestamp - a.timestamp).total_seconds() for a, b in zip(similar, similar[1:])
    ]
    consistency = time_consistency(intervals)
    peak_volume = max(z.volume for z in similar)
    relative_volume = zone.volume / peak_volume if peak_volume > 0 else 0.0

    factors = []
    bullish = 0.0
    bearish = 0.0

    if volume_trend > 0.1:
        bullish += 0.3
        factors.append("Increasing volume trend")
    elif volume_trend < -0.1:
        bearish += 0.2
        factors.append("Decreasing volume trend")

    if intensity_trend > 0.05:
        bullish += 0.25
        factors.append("Strengthening intensity")
    elif intensity_trend < -0.05:
        bearish += 0.25
        factors.append("Weakening intensity")

    if price_trend > PRICE_TREND_EPSILON:
        bullish += 0.2
        factors.append("Upward price momentum")
    elif price_trend < -PRICE_TREND_EPSILON:
        bearish += 0.2
        factors.append("Downward price momentum")

    if zone.intensity > 75:
        bullish += 0.15
        factors.append("High current intensity")
    elif zone.intensity < 25:
        bearish += 0.15
        factors.append("Low current intensity")

    if consistency > 0.7:
        bullish += 0.1
        factors.append("Consistent time pattern")

    net = bullish - bearish
    confidence = min((abs(net) + consistency) / 2, MAX_CONFIDENCE)

    if net > 0.2:
        direction = ZoneDirection.UP
    elif net < -0.2:
        direction = ZoneDirection.DOWN
    else:
        direction = ZoneDirection.STABLE
        confidence *= 0.7

    return ZoneDirectionForecast(
        zone=zone,
        direction=direction,
        confidence=confidence,
        horizon_seconds=DIRECTION_HORIZON_SECONDS,
        relative_volume=relative_volume,
        factors=tuple(factors),
    )
