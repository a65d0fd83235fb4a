"""Reconnect backoff policy with a hard attempt cap."""

from __future__ import annotations

import random

from depthscope.config_loader import BackoffConfig


class BackoffPolicy:
    """
    Exponential backoff with additive jitter and a delay cap.

    delay(n) = min(base * growth**n + U(0, jitter), cap)

    Once the attempt count reaches max_attempts the policy is exhausted and
    the caller must stop retrying (circuit breaker).
    """

    def __init__(self, config: BackoffConfig, rng: random.Random | None = None) -> None:
        self.config = config
        self._rng = rng or random.Random()

    def delay(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt number `attempt` (0-based)."""
        exponential = self.config.base_delay_seconds * (self.config.growth_factor ** attempt)
        jitter = self._rng.uniform(0, self.config.jitter_seconds) if self.config.jitter_seconds else 0.0
        return min(exponential + jitter, self.config.max_delay_seconds)

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.config.max_attempts
