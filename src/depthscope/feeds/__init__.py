"""Venue feed adapters and the Feed Manager."""

from depthscope.feeds.backoff import BackoffPolicy
from depthscope.feeds.base import VenueAdapter
from depthscope.feeds.errors import EmptyBook, FeedError, MalformedResponse, NetworkError
from depthscope.feeds.manager import FeedManager
from depthscope.feeds.quality import DataQualityRecord
from depthscope.feeds.registry import build_adapters, get_adapter

__all__ = [
    "BackoffPolicy",
    "DataQualityRecord",
    "EmptyBook",
    "FeedError",
    "FeedManager",
    "MalformedResponse",
    "NetworkError",
    "VenueAdapter",
    "build_adapters",
    "get_adapter",
]
