"""DepthScope Main Application."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

import aiohttp

from depthscope.config_loader import AppConfig, load_config_with_overrides
from depthscope.constants import LOG_FORMAT, FeedMode, TradeSide
from depthscope.feeds.manager import FeedManager
from depthscope.feeds.registry import build_adapters
from depthscope.service import MarketDepthService

logger = logging.getLogger(__name__)


class DepthScopeApp:
    """Main application orchestrator."""

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        sim: bool = False,
        venues: list[str] | None = None,
        log_level: str | None = None,
    ):
        self.config_path = Path(config_path)
        self.config: AppConfig | None = None
        self._sim_override = sim
        self._venue_override = venues or None
        self._log_level_override = log_level

        # Components
        self.feed_manager: FeedManager | None = None
        self.service: MarketDepthService | None = None

        self._running = False
        self._shutdown_event = asyncio.Event()

    def _setup_logging(self) -> None:
        level = self.config.environment.log_level.value if self.config else "INFO"
        logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)

    async def initialize(self) -> None:
        """Load config and initialize components."""
        # 1. Load Config
        self.config = load_config_with_overrides(
            self.config_path.absolute(),
            log_level=self._log_level_override,
            feed_mode=FeedMode.SIM.value if self._sim_override else None,
            venues=self._venue_override,
        )
        self._setup_logging()
        logger.info("Initializing DepthScope...")

        if self.config.is_sim_mode:
            logger.info("Sim mode: venues backed by the simulated depth generator")

        # 2. Components
        adapters = build_adapters(self.config)
        if not adapters:
            raise ValueError("No enabled venues in configuration")

        self.feed_manager = FeedManager(self.config.feeds, adapters)
        self.service = MarketDepthService(self.config, self.feed_manager)
        logger.info(f"Venues: {', '.join(a.name for a in adapters)}")

    async def run(self) -> None:
        """Run the application loop."""
        if not self.config:
            await self.initialize()

        logger.info("Starting feeds...")

        # Trap signals
        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda: self._handle_signal())
        except NotImplementedError:
            logger.warning(
                "Signal handlers not supported in this environment (likely Windows). Use Ctrl+C to stop."
            )

        await self.service.start()
        status_task = asyncio.create_task(self._status_loop())
        self._running = True

        # Wait for shutdown
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Shutting down...")
            self._running = False
            status_task.cancel()
            await asyncio.gather(status_task, return_exceptions=True)
            await self.service.stop()
            logger.info("Shutdown complete.")

    async def _status_loop(self) -> None:
        interval = self.config.environment.status_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.log_status()

    def log_status(self) -> None:
        """One status line per venue: state, quality and zone count."""
        for venue, status in self.service.get_status().items():
            quality = status["quality"]
            logger.info(
                f"📊 {venue}: {status['state']} | quality {quality['overall']:.0f} "
                f"(fresh {quality['freshness']:.0f}, rel {quality['reliability']:.0f}) | "
                f"latency {quality['latency_ms']:.0f}ms | zones {status['zones']}"
            )

    async def snapshot_once(self, venue: str, trade_size: float = 1.0) -> dict[str, Any]:
        """
        Run a single poll cycle for one venue through the analytics pipeline.

        Returns a summary dict of the resulting analytics.
        """
        if not self.config:
            await self.initialize()

        adapters = {a.name: a for a in build_adapters(self.config)}
        if venue not in adapters:
            raise ValueError(f"Unknown or disabled venue: {venue}. Available: {sorted(adapters)}")

        async with aiohttp.ClientSession() as session:
            snapshot = await adapters[venue].poll(session)

        self.service.on_snapshot(snapshot)

        spread = self.service.get_spread_analysis(venue)
        imbalance = self.service.get_imbalance(venue)
        depth = self.service.get_cumulative_depth(venue)
        buy = self.service.get_market_impact(venue, trade_size, TradeSide.BUY)
        sell = self.service.get_market_impact(venue, trade_size, TradeSide.SELL)

        return {
            "venue": venue,
            "symbol": snapshot.symbol,
            "timestamp": snapshot.timestamp.isoformat(),
            "best_bid": snapshot.best_bid,
            "best_ask": snapshot.best_ask,
            "spread": spread.current,
            "levels": (len(snapshot.bids), len(snapshot.asks)),
            "depth_imbalance": depth.depth_imbalance,
            "imbalance": f"{imbalance.direction.value} ({imbalance.bias.value}, ratio {imbalance.ratio:.2f})",
            "zones": [
                f"{z.side.value} {z.price_start:.2f}-{z.price_end:.2f} vol {z.volume:.3f} "
                f"intensity {z.intensity:.1f}"
                for z in self.service.get_pressure_zones(venue)
            ],
            "buy_impact_pct": buy.price_impact_pct,
            "sell_impact_pct": sell.price_impact_pct,
            "partial_fill": buy.is_partial_fill or sell.is_partial_fill,
        }

    def _handle_signal(self) -> None:
        logger.info("Signal received, initiating shutdown...")
        self._shutdown_event.set()
