"""Binance spot depth adapter.

Payload: {"lastUpdateId": 1027024, "bids": [["4.0", "431.0"], ...], "asks": [...]}
"""

from __future__ import annotations

from typing import Any

from depthscope.feeds.base import RawBook, VenueAdapter, optional_int
from depthscope.feeds.errors import MalformedResponse


class BinanceAdapter(VenueAdapter):
    """REST /api/v3/depth."""

    def extract_book(self, payload: Any) -> RawBook:
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, "Expected a JSON object")

        # Binance carries no book timestamp; receive time is used instead
        return RawBook(
            bids=self._require_rows(payload, "bids"),
            asks=self._require_rows(payload, "asks"),
            sequence_number=optional_int(payload.get("lastUpdateId")),
        )
