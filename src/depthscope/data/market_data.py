"""Canonical order-book data structures."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def from_epoch_ms(value: int | float) -> datetime:
    """Convert a venue epoch-millisecond timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def age_seconds(timestamp: datetime, now: datetime) -> float:
    """Seconds elapsed between timestamp and now (negative if timestamp is ahead)."""
    return (now - timestamp).total_seconds()


@dataclass(frozen=True)
class PriceLevel:
    """Single price level from one side of the book."""

    price: float
    quantity: float
    timestamp: datetime | None = None
    cumulative: float | None = None
    order_count: int | None = None

    def with_cumulative(self, cumulative: float) -> PriceLevel:
        """Return a copy carrying the running cumulative quantity."""
        return replace(self, cumulative=cumulative)


@dataclass(frozen=True)
class OrderbookSnapshot:
    """
    Full depth snapshot for one venue/symbol.

    Bids are sorted descending and asks ascending by price. Levels are
    immutable; derived fields are added on copies.
    """

    symbol: str
    venue: str
    timestamp: datetime
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    sequence_number: int | None = None

    @property
    def key(self) -> str:
        return history_key(self.venue, self.symbol)

    @property
    def best_bid(self) -> float:
        """Best bid price. Returns 0.0 if no bids."""
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        """Best ask price. Returns 0.0 if no asks."""
        return self.asks[0].price if self.asks else 0.0

    @property
    def mid_price(self) -> float:
        """Mid price. Returns 0.0 unless both sides are present."""
        if not self.bids or not self.asks:
            return 0.0
        return (self.best_bid + self.best_ask) / 2.0

    @property
    def spread(self) -> float:
        """Best ask minus best bid, 0.0 for a one-sided book."""
        if not self.bids or not self.asks:
            return 0.0
        return self.best_ask - self.best_bid

    @property
    def total_bid_volume(self) -> float:
        return sum(level.quantity for level in self.bids)

    @property
    def total_ask_volume(self) -> float:
        return sum(level.quantity for level in self.asks)

    def with_levels(
        self, bids: Iterable[PriceLevel], asks: Iterable[PriceLevel]
    ) -> OrderbookSnapshot:
        """Return a copy with replacement level tuples."""
        return replace(self, bids=tuple(bids), asks=tuple(asks))


def history_key(venue: str, symbol: str) -> str:
    """Key used by the bounded analytics stores."""
    return f"{venue}-{symbol}"
