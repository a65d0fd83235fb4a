"""Bybit v5 order book adapter.

Payload: {"retCode": 0, "result": {"s": "BTCUSDT", "b": [["65485.47", "47.081829"]],
          "a": [...], "ts": 1716863719031, "u": 230704, "seq": 1432604333}}
"""

from __future__ import annotations

from typing import Any

from depthscope.feeds.base import RawBook, VenueAdapter, optional_int, venue_timestamp
from depthscope.feeds.errors import MalformedResponse


class BybitAdapter(VenueAdapter):
    """REST /v5/market/orderbook."""

    def extract_book(self, payload: Any) -> RawBook:
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, "Expected a JSON object")

        ret_code = payload.get("retCode")
        if ret_code not in (None, 0):
            raise MalformedResponse(
                self.name, f"API error code {ret_code}: {payload.get('retMsg', '')}"
            )

        result = payload.get("result")
        if not isinstance(result, dict):
            raise MalformedResponse(self.name, "Missing 'result' in payload")

        ts = venue_timestamp(self.name, result.get("ts"))
        return RawBook(
            bids=self._require_rows(result, "b"),
            asks=self._require_rows(result, "a"),
            timestamp=ts,
            sequence_number=optional_int(result.get("u")),
        )
