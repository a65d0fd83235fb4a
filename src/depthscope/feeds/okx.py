"""OKX order book adapter.

Payload: {"code": "0", "data": [{"asks": [["41006.8", "0.6", "0", "1"]], "bids": [...],
          "ts": "1629966436396", "seqId": 3082125}]}

Rows are [price, size, deprecated, order_count].
"""

from __future__ import annotations

from typing import Any

from depthscope.feeds.base import RawBook, VenueAdapter, optional_int, venue_timestamp
from depthscope.feeds.errors import MalformedResponse


class OKXAdapter(VenueAdapter):
    """REST /api/v5/market/books."""

    def extract_book(self, payload: Any) -> RawBook:
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, "Expected a JSON object")

        code = payload.get("code")
        if code not in (None, "0", 0):
            raise MalformedResponse(self.name, f"API error code {code}: {payload.get('msg', '')}")

        data = payload.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise MalformedResponse(self.name, "Missing 'data[0]' in payload")
        book = data[0]

        ts = venue_timestamp(self.name, book.get("ts"))
        return RawBook(
            bids=self._require_rows(book, "bids"),
            asks=self._require_rows(book, "asks"),
            timestamp=ts,
            sequence_number=optional_int(book.get("seqId")),
        )
