"""Feed Manager - per-venue connection state machines, polling and fan-out."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import aiohttp

from depthscope.config_loader import FeedConfig
from depthscope.constants import ConnectionState
from depthscope.data.market_data import OrderbookSnapshot, age_seconds, utc_now
from depthscope.feeds.backoff import BackoffPolicy
from depthscope.feeds.base import VenueAdapter
from depthscope.feeds.errors import FeedError
from depthscope.feeds.quality import (
    DataQualityRecord,
    accuracy_score,
    completeness_score,
    decay_reliability,
    freshness_score,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[OrderbookSnapshot], Awaitable[None] | None]


@dataclass
class VenueRuntime:
    """Connection and quality state for one venue. Written only by FeedManager."""

    adapter: VenueAdapter
    state: ConnectionState = ConnectionState.DISCONNECTED
    reconnect_attempts: int = 0
    circuit_open: bool = False
    in_flight: bool = False
    last_update: datetime | None = None
    latest: OrderbookSnapshot | None = None
    quality: DataQualityRecord = field(default_factory=DataQualityRecord)
    poll_task: asyncio.Task | None = None
    reconnect_task: asyncio.Task | None = None
    next_reconnect_delay: float | None = None


class FeedManager:
    """
    Owns every venue's connection lifecycle.

    disconnected -> connecting -> connected | failed

    Each connected venue polls on its own task at its own interval; start-up
    is staggered so venues do not fire in lockstep. After
    `failure_threshold` consecutive poll failures the venue goes to failed
    and a reconnect is scheduled with exponential backoff. Once the backoff
    policy is exhausted the circuit opens and no further reconnect happens.

    Validated snapshots are fanned out to every subscriber. A raising
    subscriber is logged and skipped; coroutine subscribers run as their own
    tasks so a slow consumer never holds up a venue's polling.

    Usage:
        manager = FeedManager(config.feeds, adapters)
        unsubscribe = manager.subscribe(on_snapshot)
        await manager.start()
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        config: FeedConfig,
        adapters: list[VenueAdapter],
        session: aiohttp.ClientSession | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self.config = config
        self.backoff = backoff or BackoffPolicy(config.backoff)

        self._venues: dict[str, VenueRuntime] = {}
        for adapter in adapters:
            if adapter.name in self._venues:
                raise ValueError(f"Duplicate venue adapter: {adapter.name}")
            self._venues[adapter.name] = VenueRuntime(adapter=adapter)

        self._subscribers: list[Subscriber] = []
        self._session = session
        self._owns_session = session is None
        self._tasks: set[asyncio.Task] = set()
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for validated snapshots. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the HTTP session and schedule staggered venue start-ups."""
        if self._started or self._closed:
            return
        self._started = True

        if self._session is None:
            self._session = aiohttp.ClientSession()

        for index, name in enumerate(self._venues):
            delay = index * self.config.stagger_seconds
            self._spawn(self._start_venue(name, delay), name=f"start-{name}")

        self._spawn(self._monitor_quality(), name="quality-monitor")
        logger.info(f"FeedManager started for {list(self._venues)}")

    async def shutdown(self) -> None:
        """Cancel every poll, reconnect and dispatch task. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        logger.info("🔌 Disconnecting from all venues...")

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

        for runtime in self._venues.values():
            runtime.state = ConnectionState.DISCONNECTED
            runtime.poll_task = None
            runtime.reconnect_task = None
            runtime.in_flight = False

        self._subscribers.clear()

        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
        logger.info("FeedManager shut down")

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _start_venue(self, name: str, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await self.connect(name)

    # ------------------------------------------------------------------
    # Connection state machine
    # ------------------------------------------------------------------

    async def connect(self, name: str) -> bool:
        """
        Attempt to bring a venue to connected with one validating poll.

        On success the snapshot is delivered and the polling task starts.
        On failure the venue is marked failed and a reconnect is scheduled.
        """
        runtime = self._venues[name]
        if self._closed or runtime.circuit_open:
            return False
        if runtime.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return runtime.state == ConnectionState.CONNECTED

        runtime.state = ConnectionState.CONNECTING
        logger.info(f"Connecting to {name}...")

        started = time.perf_counter()
        try:
            snapshot = await runtime.adapter.poll(self._session)
        except Exception as e:
            if self._closed:
                return False
            self._record_failure(runtime, e)
            runtime.state = ConnectionState.FAILED
            logger.error(f"❌ {name} connection failed: {e}")
            self._schedule_reconnect(name)
            return False

        if self._closed:
            return False

        runtime.state = ConnectionState.CONNECTED
        runtime.reconnect_attempts = 0
        pending = runtime.reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()
        runtime.reconnect_task = None
        runtime.next_reconnect_delay = None
        self._record_success(runtime, snapshot, time.perf_counter() - started)
        logger.info(f"✅ {name} connected")

        self._dispatch(snapshot)
        previous = runtime.poll_task
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()
        runtime.poll_task = self._spawn(self._poll_loop(name), name=f"poll-{name}")
        return True

    async def _poll_loop(self, name: str) -> None:
        runtime = self._venues[name]
        interval = runtime.adapter.config.poll_interval_seconds

        while not self._closed and runtime.state == ConnectionState.CONNECTED:
            await asyncio.sleep(interval)
            if self._closed or runtime.state != ConnectionState.CONNECTED:
                break
            await self.poll_once(name)

    async def poll_once(self, name: str) -> bool:
        """
        Run one poll cycle for a connected venue.

        Gated on state: returns False without fetching unless the venue is
        connected and has no poll already in flight.
        """
        runtime = self._venues[name]
        if self._closed or runtime.state != ConnectionState.CONNECTED or runtime.in_flight:
            return False

        runtime.in_flight = True
        started = time.perf_counter()
        try:
            snapshot = await runtime.adapter.poll(self._session)
        except Exception as e:
            if self._closed:
                return False
            self._record_failure(runtime, e)
            logger.warning(
                f"{name} polling error ({runtime.quality.consecutive_errors} consecutive): {e}"
            )
            if runtime.quality.consecutive_errors >= self.config.quality.failure_threshold:
                runtime.state = ConnectionState.FAILED
                logger.error(f"{name} marked failed after {runtime.quality.consecutive_errors} errors")
                self._schedule_reconnect(name)
            return False
        finally:
            runtime.in_flight = False

        if self._closed:
            return False

        self._record_success(runtime, snapshot, time.perf_counter() - started)
        self._dispatch(snapshot)
        return True

    def _schedule_reconnect(self, name: str) -> None:
        if self._closed:
            return

        runtime = self._venues[name]
        attempts = runtime.reconnect_attempts

        if self.backoff.exhausted(attempts):
            runtime.state = ConnectionState.FAILED
            runtime.circuit_open = True
            runtime.next_reconnect_delay = None
            logger.error(f"🚫 Max reconnection attempts reached for {name}")
            return

        existing = runtime.reconnect_task
        if existing is not None and not existing.done() and existing is not asyncio.current_task():
            existing.cancel()

        delay = self.backoff.delay(attempts)
        runtime.next_reconnect_delay = delay
        logger.info(
            f"⏰ Scheduling {name} reconnect in {delay:.1f}s "
            f"(attempt {attempts + 1}/{self.backoff.config.max_attempts})"
        )
        runtime.reconnect_task = self._spawn(
            self._reconnect_after(name, delay, attempts), name=f"reconnect-{name}"
        )

    async def _reconnect_after(self, name: str, delay: float, attempts: int) -> None:
        await asyncio.sleep(delay)
        runtime = self._venues[name]
        runtime.reconnect_task = None
        if self._closed or runtime.state != ConnectionState.FAILED:
            return

        logger.info(f"🔄 Attempting to reconnect to {name}... (attempt {attempts + 1})")
        runtime.reconnect_attempts = attempts + 1
        await self.connect(name)

    # ------------------------------------------------------------------
    # Quality bookkeeping
    # ------------------------------------------------------------------

    def _record_success(
        self, runtime: VenueRuntime, snapshot: OrderbookSnapshot, latency_s: float
    ) -> None:
        quality = runtime.quality
        quality.latency_ms = latency_s * 1000.0
        quality.consecutive_errors = 0
        quality.last_error = None
        quality.completeness = completeness_score(
            len(snapshot.bids), len(snapshot.asks), runtime.adapter.config.expected_levels
        )
        quality.accuracy = accuracy_score(snapshot, self.config.quality)
        runtime.last_update = utc_now()
        runtime.latest = snapshot

    def _record_failure(self, runtime: VenueRuntime, error: Exception) -> None:
        runtime.quality.consecutive_errors += 1
        runtime.quality.last_error = str(error)
        if not isinstance(error, FeedError):
            logger.error(f"Unexpected error polling {runtime.adapter.name}", exc_info=error)

    def refresh_quality(self, now: datetime | None = None) -> None:
        """Recompute freshness bands and decay reliability for every venue."""
        now = now or utc_now()
        for runtime in self._venues.values():
            since = age_seconds(runtime.last_update, now) if runtime.last_update else None
            runtime.quality.freshness = freshness_score(since)
            runtime.quality.reliability = decay_reliability(
                runtime.quality.reliability, runtime.state == ConnectionState.CONNECTED
            )

    async def _monitor_quality(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.quality.monitor_interval_seconds)
            self.refresh_quality()

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _dispatch(self, snapshot: OrderbookSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
            except Exception:
                logger.error("Error in subscriber callback", exc_info=True)
                continue
            if inspect.isawaitable(result):
                self._spawn(self._await_subscriber(result), name=f"dispatch-{snapshot.venue}")

    async def _await_subscriber(self, pending: Awaitable[Any]) -> None:
        try:
            await pending
        except Exception:
            logger.error("Error in async subscriber callback", exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    @property
    def venues(self) -> list[str]:
        return list(self._venues)

    def get_state(self, name: str) -> ConnectionState:
        return self._venues[name].state

    def get_connection_status(self) -> dict[str, bool]:
        return {
            name: runtime.state == ConnectionState.CONNECTED
            for name, runtime in self._venues.items()
        }

    def get_detailed_status(self) -> dict[str, ConnectionState]:
        return {name: runtime.state for name, runtime in self._venues.items()}

    def get_data_freshness(self, now: datetime | None = None) -> dict[str, float | None]:
        """Seconds since each venue's last good update (None if never updated)."""
        now = now or utc_now()
        return {
            name: age_seconds(runtime.last_update, now) if runtime.last_update else None
            for name, runtime in self._venues.items()
        }

    def get_data_quality(self) -> dict[str, DataQualityRecord]:
        return {name: runtime.quality.copy() for name, runtime in self._venues.items()}

    def get_latest_snapshot(self, name: str) -> OrderbookSnapshot | None:
        runtime = self._venues.get(name)
        return runtime.latest if runtime else None

    def is_reconnect_scheduled(self, name: str) -> bool:
        task = self._venues[name].reconnect_task
        return task is not None and not task.done()

    def is_circuit_open(self, name: str) -> bool:
        return self._venues[name].circuit_open

    def reconnect_attempts(self, name: str) -> int:
        return self._venues[name].reconnect_attempts
