"""Simulated depth venue."""

import logging
import random
from typing import Any

from depthscope.config_loader import VenueConfig
from depthscope.feeds.base import RawBook, VenueAdapter
from depthscope.feeds.errors import MalformedResponse

logger = logging.getLogger(__name__)


class SimAdapter(VenueAdapter):
    """
    Generates synthetic depth for simulation/dry-run.
    Mid price follows a random walk; quantities are random with an
    occasional large resting order so pressure zones appear.
    """

    def __init__(
        self,
        config: VenueConfig,
        start_price: float = 65000.0,
        tick_size: float = 0.5,
        rng: random.Random | None = None,
    ):
        super().__init__(config)
        self.tick_size = tick_size
        self.mid_price = start_price
        self._rng = rng or random.Random()
        self._sequence = 0

    async def fetch(self, session: Any) -> Any:
        """Produce a Binance-shaped payload; the session is unused."""
        self.mid_price += self._rng.choice([-2, -1, 0, 1, 2]) * self.tick_size
        self._sequence += 1

        levels = self.config.expected_levels
        half_spread = self.tick_size * self._rng.randint(1, 3)
        best_bid = self.mid_price - half_spread
        best_ask = self.mid_price + half_spread

        bids = [
            [f"{best_bid - i * self.tick_size:.2f}", f"{self._quantity():.4f}"]
            for i in range(levels)
        ]
        asks = [
            [f"{best_ask + i * self.tick_size:.2f}", f"{self._quantity():.4f}"]
            for i in range(levels)
        ]
        return {"lastUpdateId": self._sequence, "bids": bids, "asks": asks}

    def _quantity(self) -> float:
        qty = self._rng.uniform(0.05, 2.0)
        if self._rng.random() < 0.1:
            qty *= 10
        return qty

    def extract_book(self, payload: Any) -> RawBook:
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, "Expected a JSON object")
        return RawBook(
            bids=self._require_rows(payload, "bids"),
            asks=self._require_rows(payload, "asks"),
            sequence_number=payload.get("lastUpdateId"),
        )
