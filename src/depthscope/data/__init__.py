"""Canonical order-book types and bounded history stores."""

from depthscope.data.history import BoundedHistory
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel, history_key, utc_now

__all__ = [
    "BoundedHistory",
    "OrderbookSnapshot",
    "PriceLevel",
    "history_key",
    "utc_now",
]
