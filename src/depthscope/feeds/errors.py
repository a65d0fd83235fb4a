"""Feed failure taxonomy raised by venue adapters."""

from __future__ import annotations


class FeedError(Exception):
    """Base class for a failed fetch/parse/validate cycle."""

    def __init__(self, venue: str, message: str) -> None:
        super().__init__(f"[{venue}] {message}")
        self.venue = venue
        self.message = message


class NetworkError(FeedError):
    """Both primary and fallback endpoints were unreachable or returned an HTTP error."""


class MalformedResponse(FeedError):
    """The payload was not JSON or did not match the venue schema."""


class EmptyBook(FeedError):
    """The payload was well-formed but left no usable levels after filtering."""
