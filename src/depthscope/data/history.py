"""Bounded FIFO stores for analytics history."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    """
    Fixed-capacity FIFO ring.

    Appending beyond capacity evicts the oldest item. Readers receive tuple
    copies, so a query never observes a half-applied append/evict.

    Thread-safety: single writer per instance on the event loop.
    """

    def __init__(self, maxlen: int) -> None:
        if maxlen <= 0:
            raise ValueError(f"maxlen must be positive, got: {maxlen}")
        self._items: deque[T] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._items.maxlen or 0

    def append(self, item: T) -> T | None:
        """Append an item, returning the evicted one if the ring was full."""
        evicted = self._items[0] if len(self._items) == self.maxlen else None
        self._items.append(item)
        return evicted

    def extend(self, items: list[T]) -> None:
        for item in items:
            self.append(item)

    def snapshot(self) -> tuple[T, ...]:
        """Immutable copy of the current contents, oldest first."""
        return tuple(self._items)

    def latest(self) -> T | None:
        return self._items[-1] if self._items else None

    def tail(self, n: int) -> tuple[T, ...]:
        """The n most recent items, oldest first."""
        if n <= 0:
            return ()
        items = self.snapshot()
        return items[-n:]

    def since(self, cutoff: datetime, timestamp_of: Callable[[T], datetime]) -> list[T]:
        """Items whose timestamp is at or after cutoff."""
        return [item for item in self._items if timestamp_of(item) >= cutoff]

    def retain(self, predicate: Callable[[T], bool]) -> int:
        """Drop items failing predicate; returns how many were removed."""
        kept = [item for item in self._items if predicate(item)]
        removed = len(self._items) - len(kept)
        self._items.clear()
        self._items.extend(kept)
        return removed

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())
