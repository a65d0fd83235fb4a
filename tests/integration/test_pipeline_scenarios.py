"""Integration test: snapshots flowing from feeds through detection and analytics."""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from depthscope.config_loader import (
    AppConfig,
    BackoffConfig,
    EnvironmentConfig,
    FeedConfig,
    QualityConfig,
    VenueConfig,
)
from depthscope.constants import MERGED_VENUE, BookSide, ConnectionState, FeedMode, VenueSchema
from depthscope.data.market_data import OrderbookSnapshot, PriceLevel
from depthscope.feeds.errors import NetworkError
from depthscope.feeds.manager import FeedManager
from depthscope.feeds.sim import SimAdapter
from depthscope.service import MarketDepthService

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def book(bids, asks, ts=NOW, venue="binance"):
    return OrderbookSnapshot(
        symbol="BTCUSDT",
        venue=venue,
        timestamp=ts,
        bids=tuple(PriceLevel(p, q) for p, q in sorted(bids, reverse=True)),
        asks=tuple(PriceLevel(p, q) for p, q in sorted(asks)),
    )


@pytest.fixture
def config():
    return AppConfig(
        environment=EnvironmentConfig(feed_mode=FeedMode.SIM),
        feeds=FeedConfig(
            venues=[
                VenueConfig(name="alpha", kind=VenueSchema.SIM, poll_interval_seconds=0.01),
                VenueConfig(name="beta", kind=VenueSchema.SIM, poll_interval_seconds=0.02),
            ],
            stagger_seconds=0,
            backoff=BackoffConfig(base_delay_seconds=10, jitter_seconds=0),
            quality=QualityConfig(monitor_interval_seconds=60),
        ),
    )


def sim_adapters(config):
    return [SimAdapter(v, rng=random.Random(i)) for i, v in enumerate(config.feeds.venues)]


async def wait_for(predicate, timeout=3.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not reached before timeout")
        await asyncio.sleep(0.01)


class TestScenarios:
    def test_three_ticks_single_venue(self, config):
        service = MarketDepthService(config, FeedManager(config.feeds, sim_adapters(config)))
        bids = [(100.0, 1.0), (101.0, 1.0), (102.0, 1.0)]
        asks = [(103.0, 1.0), (104.0, 1.0), (105.0, 1.0)]

        for i in range(3):
            service.on_snapshot(book(bids, asks, ts=NOW + timedelta(seconds=i), venue="alpha"))

        merged = service.get_merged_orderbook("BTCUSDT", ["alpha"])
        assert [(lvl.price, lvl.quantity) for lvl in merged.bids] == [
            (102.0, 1.0),
            (101.0, 1.0),
            (100.0, 1.0),
        ]
        assert [(lvl.price, lvl.quantity) for lvl in merged.asks] == asks

        spread = service.get_spread_analysis("alpha")
        assert spread.current == 1.0
        assert spread.sample_count == 3

        latest = service.get_venue_data("alpha")
        profile = service.processor.volume_profile([latest], price_step=1.0, now=latest.timestamp)
        assert [b.price for b in profile] == [100.0, 101.0, 102.0, 103.0, 104.0, 105.0]
        assert all(b.transactions == 1 for b in profile)

        window = service.get_volume_profile("alpha", price_step=1.0, now=NOW + timedelta(seconds=2))
        assert len(window) == 6
        assert all(b.transactions == 3 for b in window)

    def test_bid_cluster_becomes_one_zone(self, config):
        service = MarketDepthService(config, FeedManager(config.feeds, sim_adapters(config)))
        cluster = [(100.00, 5.0), (100.01, 5.0), (100.02, 5.0)]
        scattered = [(80.0, 1.0), (85.0, 1.0), (90.0, 1.0), (95.0, 1.0), (99.0, 1.0)]

        service.on_snapshot(book(cluster + scattered, [], venue="alpha"))

        (zone,) = [z for z in service.get_pressure_zones("alpha") if z.side == BookSide.BID]
        assert (zone.price_start, zone.price_end) == (100.00, 100.02)
        assert zone.volume == pytest.approx(15.0)


class TestLivePipeline:
    @pytest.mark.asyncio
    async def test_sim_venues_feed_analytics(self, config):
        manager = FeedManager(config.feeds, sim_adapters(config), session=MagicMock())
        service = MarketDepthService(config, manager)
        consumer = []
        service.subscribe(consumer.append)

        await service.start()
        await wait_for(
            lambda: all(
                len(service.processor.get_snapshots(v, "BTCUSDT")) >= 12 for v in ("alpha", "beta")
            )
        )

        status = service.get_status()
        assert {v: s["state"] for v, s in status.items()} == {
            "alpha": "connected",
            "beta": "connected",
        }
        assert {s.venue for s in consumer} == {"alpha", "beta"}

        merged = service.get_merged_orderbook()
        assert merged.venue == MERGED_VENUE
        assert len(merged.bids) == config.processor.merged_depth

        assert service.get_spread_analysis("alpha").sample_count >= 12
        assert service.get_prediction("alpha").insufficient_data is False
        assert service.get_volume_profile("beta", price_step=1.0)

        await service.stop()
        assert manager.is_closed
        assert manager.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_failed_venue_does_not_halt_pipeline(self, config):
        adapters = sim_adapters(config)
        adapters[1].fetch = AsyncMock(side_effect=NetworkError("beta", "connection refused"))
        manager = FeedManager(config.feeds, adapters, session=MagicMock())
        service = MarketDepthService(config, manager)

        await service.start()
        await wait_for(lambda: service.snapshots_processed >= 10)

        assert manager.get_state("alpha") == ConnectionState.CONNECTED
        assert manager.get_state("beta") == ConnectionState.FAILED
        assert manager.is_reconnect_scheduled("beta")
        assert service.get_venue_data("beta") is None
        assert service.get_cumulative_depth("beta") is None
        assert service.get_status()["beta"]["quality"]["last_error"] == "[beta] connection refused"

        merged = service.get_merged_orderbook("BTCUSDT", ["alpha", "beta"])
        assert merged.best_bid == service.get_venue_data("alpha").best_bid

        await service.stop()
