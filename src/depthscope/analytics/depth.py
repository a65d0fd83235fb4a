"""Depth analytics on single snapshots: cumulative depth, market impact, volume profile."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from depthscope.analytics.stats import decay_weight
from depthscope.constants import TradeSide
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel, age_seconds, utc_now

# Residual size treated as fully filled
FILL_TOLERANCE = 1e-9


def with_cumulative(levels: Iterable[PriceLevel]) -> tuple[PriceLevel, ...]:
    """Copies of levels carrying the running cumulative quantity, in input order."""
    running = 0.0
    result = []
    for level in levels:
        running += level.quantity
        result.append(level.with_cumulative(running))
    return tuple(result)


def enrich_snapshot(snapshot: OrderbookSnapshot) -> OrderbookSnapshot:
    """Copy of a snapshot with cumulative quantities on both sides."""
    bids = sorted(snapshot.bids, key=lambda lvl: lvl.price, reverse=True)
    asks = sorted(snapshot.asks, key=lambda lvl: lvl.price)
    return snapshot.with_levels(with_cumulative(bids), with_cumulative(asks))


# ============================================
# Cumulative depth
# ============================================


@dataclass(frozen=True)
class DepthLevel:
    """One level of a cumulative depth curve."""

    price: float
    quantity: float
    cumulative: float
    orders: int
    average_size: float
    time_weight: float


@dataclass(frozen=True)
class CumulativeDepth:
    """Cumulative depth curves for both sides of one snapshot."""

    venue: str
    timestamp: datetime
    bids: tuple[DepthLevel, ...]
    asks: tuple[DepthLevel, ...]
    total_bid_volume: float
    total_ask_volume: float
    max_depth: float
    depth_imbalance: float  # bid share of total volume minus 0.5


def _depth_levels(
    levels: Sequence[PriceLevel], fallback_ts: datetime, now: datetime, half_life: float
) -> tuple[DepthLevel, ...]:
    running = 0.0
    out = []
    for level in levels:
        running += level.quantity
        orders = level.order_count or 1
        ts = level.timestamp or fallback_ts
        out.append(
            DepthLevel(
                price=level.price,
                quantity=level.quantity,
                cumulative=running,
                orders=orders,
                average_size=level.quantity / orders,
                time_weight=decay_weight(age_seconds(ts, now), half_life),
            )
        )
    return tuple(out)


def cumulative_depth(
    snapshot: OrderbookSnapshot,
    now: datetime | None = None,
    half_life_seconds: float = 300.0,
) -> CumulativeDepth:
    """
    Running cumulative quantity per side with average order size and a
    freshness weight per level.

    Order size falls back to one order per level when the venue does not
    report order counts.
    """
    now = now or utc_now()
    bids = _depth_levels(
        sorted(snapshot.bids, key=lambda lvl: lvl.price, reverse=True),
        snapshot.timestamp,
        now,
        half_life_seconds,
    )
    asks = _depth_levels(
        sorted(snapshot.asks, key=lambda lvl: lvl.price),
        snapshot.timestamp,
        now,
        half_life_seconds,
    )

    total_bid = bids[-1].cumulative if bids else 0.0
    total_ask = asks[-1].cumulative if asks else 0.0
    total = total_bid + total_ask

    return CumulativeDepth(
        venue=snapshot.venue,
        timestamp=snapshot.timestamp,
        bids=bids,
        asks=asks,
        total_bid_volume=total_bid,
        total_ask_volume=total_ask,
        max_depth=max(total_bid, total_ask),
        depth_imbalance=(total_bid / total - 0.5) if total > 0 else 0.0,
    )


# ============================================
# Market impact
# ============================================


@dataclass(frozen=True)
class MarketImpact:
    """
    Estimated cost of a market order walking the book.

    `estimated_execution_seconds` is a heuristic (levels touched times a
    fixed per-level constant), not a latency model.
    """

    side: TradeSide
    requested_size: float
    filled_size: float
    average_price: float
    best_price: float
    worst_price: float
    price_impact_pct: float
    slippage_pct: float
    levels_consumed: int
    estimated_execution_seconds: float

    @property
    def is_partial_fill(self) -> bool:
        return self.requested_size - self.filled_size > FILL_TOLERANCE

    @property
    def unfilled_size(self) -> float:
        return max(self.requested_size - self.filled_size, 0.0)


def market_impact(
    snapshot: OrderbookSnapshot,
    size: float,
    side: TradeSide,
    seconds_per_level: float = 0.1,
) -> MarketImpact:
    """
    Walk the opposite side of the book consuming `size`.

    A buy consumes asks from the best (lowest) price up, a sell consumes bids
    from the best (highest) price down. If depth runs out the result covers
    the filled portion only and `is_partial_fill` is set.

    Raises:
        ValueError: If size is not positive.
    """
    if size <= 0:
        raise ValueError(f"Trade size must be positive, got: {size}")

    side = TradeSide(side)
    if side == TradeSide.BUY:
        levels = sorted(snapshot.asks, key=lambda lvl: lvl.price)
    else:
        levels = sorted(snapshot.bids, key=lambda lvl: lvl.price, reverse=True)

    if not levels:
        return MarketImpact(
            side=side,
            requested_size=size,
            filled_size=0.0,
            average_price=0.0,
            best_price=0.0,
            worst_price=0.0,
            price_impact_pct=0.0,
            slippage_pct=0.0,
            levels_consumed=0,
            estimated_execution_seconds=0.0,
        )

    best = levels[0].price
    worst = best
    remaining = size
    cost = 0.0
    consumed = 0

    for level in levels:
        if remaining <= FILL_TOLERANCE:
            break
        take = min(remaining, level.quantity)
        cost += take * level.price
        remaining -= take
        worst = level.price
        consumed += 1

    filled = size - max(remaining, 0.0)
    average = cost / filled

    return MarketImpact(
        side=side,
        requested_size=size,
        filled_size=filled,
        average_price=average,
        best_price=best,
        worst_price=worst,
        price_impact_pct=abs(average - best) / best * 100.0,
        slippage_pct=abs(worst - best) / best * 100.0,
        levels_consumed=consumed,
        estimated_execution_seconds=consumed * seconds_per_level,
    )


# ============================================
# Volume profile
# ============================================


@dataclass(frozen=True)
class VolumeProfileBucket:
    """Quoted volume at one price bucket across a set of snapshots."""

    price: float
    bid_volume: float
    ask_volume: float
    total_volume: float
    weighted_volume: float  # decay-weighted by snapshot age
    percentage: float
    transactions: int
    venues: tuple[str, ...]


def bucket_price(price: float, step: float) -> float:
    """Round a price half-up to the nearest multiple of step."""
    # round() trims float noise so 100.00000000001 and 100.0 share a bucket
    return round(math.floor(price / step + 0.5) * step, 10)


def volume_profile(
    snapshots: Iterable[OrderbookSnapshot],
    price_step: float,
    now: datetime | None = None,
    half_life_seconds: float = 300.0,
) -> list[VolumeProfileBucket]:
    """
    Bucket every level's quantity by price rounded to price_step.

    Each level counts as one transaction in its bucket. Raw volumes and the
    percentage are unweighted; `weighted_volume` applies exponential time
    decay by snapshot age. Buckets are returned in ascending price order.

    Raises:
        ValueError: If price_step is not positive.
    """
    if price_step <= 0:
        raise ValueError(f"Price step must be positive, got: {price_step}")

    now = now or utc_now()
    buckets: dict[float, dict] = {}

    def add(level: PriceLevel, is_bid: bool, weight: float, venue: str) -> None:
        key = bucket_price(level.price, price_step)
        entry = buckets.setdefault(
            key, {"bid": 0.0, "ask": 0.0, "weighted": 0.0, "count": 0, "venues": set()}
        )
        entry["bid" if is_bid else "ask"] += level.quantity
        entry["weighted"] += level.quantity * weight
        entry["count"] += 1
        entry["venues"].add(venue)

    for snapshot in snapshots:
        weight = decay_weight(age_seconds(snapshot.timestamp, now), half_life_seconds)
        for level in snapshot.bids:
            add(level, True, weight, snapshot.venue)
        for level in snapshot.asks:
            add(level, False, weight, snapshot.venue)

    grand_total = sum(entry["bid"] + entry["ask"] for entry in buckets.values())

    profile = []
    for price in sorted(buckets):
        entry = buckets[price]
        total = entry["bid"] + entry["ask"]
        profile.append(
            VolumeProfileBucket(
                price=price,
                bid_volume=entry["bid"],
                ask_volume=entry["ask"],
                total_volume=total,
                weighted_volume=entry["weighted"],
                percentage=(total / grand_total * 100.0) if grand_total > 0 else 0.0,
                transactions=entry["count"],
                venues=tuple(sorted(entry["venues"])),
            )
        )
    return profile
