"""Venue adapter registry."""

import logging

from depthscope.config_loader import AppConfig, VenueConfig
from depthscope.constants import VenueSchema
from depthscope.feeds.base import VenueAdapter
from depthscope.feeds.binance import BinanceAdapter
from depthscope.feeds.bybit import BybitAdapter
from depthscope.feeds.okx import OKXAdapter
from depthscope.feeds.sim import SimAdapter

logger = logging.getLogger(__name__)


ADAPTER_MAP: dict[VenueSchema, type[VenueAdapter]] = {
    VenueSchema.BINANCE: BinanceAdapter,
    VenueSchema.OKX: OKXAdapter,
    VenueSchema.BYBIT: BybitAdapter,
    VenueSchema.SIM: SimAdapter,
}


def get_available_schemas() -> list[str]:
    """Return list of supported venue payload variants."""
    return [s.value for s in ADAPTER_MAP]


def get_adapter(venue: VenueConfig) -> VenueAdapter:
    """
    Factory to instantiate the adapter for a venue.

    Raises:
        ValueError: If the venue kind is unknown.
    """
    adapter_cls = ADAPTER_MAP.get(venue.kind)
    if not adapter_cls:
        available = get_available_schemas()
        logger.error(f"Unknown venue kind '{venue.kind}'. Available: {available}")
        raise ValueError(
            f"Unknown venue kind: '{venue.kind}'. Available kinds: {', '.join(available)}."
        )
    return adapter_cls(venue)


def build_adapters(config: AppConfig) -> list[VenueAdapter]:
    """
    Build adapters for every enabled venue.

    In sim mode every venue is backed by the simulated generator, keeping
    its name and symbol so downstream keys are unchanged.
    """
    adapters: list[VenueAdapter] = []
    for venue in config.feeds.enabled_venues:
        if config.is_sim_mode and venue.kind != VenueSchema.SIM:
            venue = venue.model_copy(update={"kind": VenueSchema.SIM})
        adapters.append(get_adapter(venue))
    logger.info(f"Built adapters: {[a.name for a in adapters]}")
    return adapters
