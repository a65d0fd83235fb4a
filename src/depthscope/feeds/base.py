"""Base venue adapter: one fetch + parse + validate cycle per call."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiohttp

from depthscope.config_loader import VenueConfig
from depthscope.constants import BookSide
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel, from_epoch_ms, utc_now
from depthscope.feeds.errors import EmptyBook, MalformedResponse, NetworkError

logger = logging.getLogger(__name__)


@dataclass
class RawBook:
    """Venue-native book fields pulled out of a payload, before filtering."""

    bids: list[Any]
    asks: list[Any]
    timestamp: datetime | None = None
    sequence_number: int | None = None


def parse_levels(
    raw_levels: Iterable[Any], side: BookSide, timestamp: datetime
) -> tuple[PriceLevel, ...]:
    """
    Convert venue [price, quantity, ...] rows into sorted canonical levels.

    Rows with non-numeric, non-finite or non-positive price/quantity are
    dropped. Duplicate prices are summed so each side is strictly monotonic.
    A fourth column, when numeric, is taken as the order count (OKX).
    """
    quantities: dict[float, float] = {}
    orders: dict[float, int] = {}

    for row in raw_levels:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        price = _level_number(row[0])
        qty = _level_number(row[1])
        if price is None or qty is None:
            continue
        if price <= 0 or qty <= 0:
            continue

        quantities[price] = quantities.get(price, 0.0) + qty

        if len(row) > 3:
            count = optional_int(row[3])
            if count is not None:
                orders[price] = orders.get(price, 0) + count

    prices = sorted(quantities, reverse=(side == BookSide.BID))
    return tuple(
        PriceLevel(
            price=price,
            quantity=quantities[price],
            timestamp=timestamp,
            order_count=orders.get(price),
        )
        for price in prices
    )


class VenueAdapter(ABC):
    """
    Translates one venue's depth endpoint into canonical snapshots.

    No retry loop lives here: a failed primary endpoint is retried once on
    the fallback endpoint within the same cycle, and any remaining failure is
    raised as a FeedError for the Feed Manager to handle.
    """

    def __init__(self, config: VenueConfig) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def symbol(self) -> str:
        return self.config.symbol

    async def poll(self, session: aiohttp.ClientSession | None) -> OrderbookSnapshot:
        """Run one fetch + parse + validate cycle."""
        payload = await self.fetch(session)
        return self.parse(payload)

    async def fetch(self, session: aiohttp.ClientSession | None) -> Any:
        """Fetch the primary endpoint, falling back once on a network failure."""
        if session is None:
            raise NetworkError(self.name, "No HTTP session available")

        try:
            return await self._get_json(session, self.config.primary_url)
        except NetworkError as primary_error:
            if not self.config.fallback_url:
                raise
            logger.warning(f"Primary endpoint failed for {self.name}, trying fallback...")
            try:
                return await self._get_json(session, self.config.fallback_url)
            except NetworkError as fallback_error:
                raise NetworkError(
                    self.name,
                    f"primary: {primary_error.message}; fallback: {fallback_error.message}",
                ) from fallback_error

    async def _get_json(self, session: aiohttp.ClientSession, url: str) -> Any:
        """GET url and decode JSON, mapping transport errors to NetworkError."""
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
        try:
            async with session.get(url, timeout=timeout) as resp:
                resp.raise_for_status()
                raw = await resp.read()
        except aiohttp.ClientResponseError as e:
            raise NetworkError(self.name, f"HTTP {e.status}: {e.message}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(self.name, f"{type(e).__name__}: {e}") from e

        try:
            return json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedResponse(self.name, f"Invalid JSON: {e}") from e

    def parse(self, payload: Any, received_at: datetime | None = None) -> OrderbookSnapshot:
        """Validate a venue payload and build the canonical snapshot."""
        received_at = received_at or utc_now()
        raw = self.extract_book(payload)
        timestamp = raw.timestamp or received_at

        bids = parse_levels(raw.bids, BookSide.BID, timestamp)
        asks = parse_levels(raw.asks, BookSide.ASK, timestamp)

        if not bids or not asks:
            raise EmptyBook(
                self.name,
                f"No usable levels after filtering (bids={len(bids)}, asks={len(asks)})",
            )

        return OrderbookSnapshot(
            symbol=self.symbol,
            venue=self.name,
            timestamp=timestamp,
            bids=bids,
            asks=asks,
            sequence_number=raw.sequence_number,
        )

    @abstractmethod
    def extract_book(self, payload: Any) -> RawBook:
        """
        Pull raw bid/ask rows out of the venue-native payload.

        Raises:
            MalformedResponse: If the payload does not match the venue schema.
        """

    def _require_rows(self, container: Any, key: str) -> list[Any]:
        """Fetch a list-valued field or raise MalformedResponse."""
        if not isinstance(container, dict) or key not in container:
            raise MalformedResponse(self.name, f"Missing '{key}' in payload")
        rows = container[key]
        if not isinstance(rows, list):
            raise MalformedResponse(self.name, f"'{key}' is not a list")
        return rows


def optional_int(value: Any) -> int | None:
    """Parse a venue integer field, tolerating strings and absence."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _level_number(value: Any) -> float | None:
    """Finite float from a price or quantity cell; booleans are not numbers here."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def venue_timestamp(venue: str, value: Any) -> datetime | None:
    """
    Parse a venue epoch-millisecond `ts` field.

    Returns None when the field is absent or zero.

    Raises:
        MalformedResponse: If the value cannot be represented as a datetime.
    """
    ms = optional_int(value)
    if not ms:
        return None
    try:
        return from_epoch_ms(ms)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedResponse(venue, f"Timestamp out of range: {value!r}") from e
