"""
Collaborators of the proximity watcher.

The watcher never talks to the platform directly. It consumes:
- an `EventQueryService` (remote events API),
- a `LocationProvider` (permission + a stream of location samples),
- a `CurrentLocationProvider` (one-shot fix for manual checks),
- a `NotificationDispatcher` (local notifications),
- a `KeyValueStore` (ledger persistence).

`QueueLocationStream` adapts callback-style location delivery (possibly from a
platform thread) into an async iterator that the watcher consumes with a plain
`async for`. Closing the stream ends the iteration and drops pending samples.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Protocol

from minyanmap.core.geo import GeoPoint, haversine_m
from minyanmap.domain.models import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplingPolicy:
    """Deliver a sample only after `min_interval_seconds` AND `min_distance_m` since the last one."""

    min_interval_seconds: float = 300
    min_distance_m: float = 100


class EventQueryService(Protocol):
    async def list_nearby(
        self, point: GeoPoint, radius_km: float, on_or_after: datetime, before: datetime
    ) -> list[Event]: ...

    async def report_location(self, point: GeoPoint) -> None: ...


class LocationStream(Protocol):
    def __aiter__(self) -> AsyncIterator[GeoPoint]: ...

    async def __anext__(self) -> GeoPoint: ...

    def close(self) -> None: ...


class LocationProvider(Protocol):
    async def request_permission(self) -> bool: ...

    def subscribe(self, policy: SamplingPolicy) -> LocationStream: ...


class CurrentLocationProvider(Protocol):
    async def current_location(self) -> GeoPoint: ...


class NotificationDispatcher(Protocol):
    async def send_local(self, title: str, body: str, data: dict[str, Any]) -> None: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class QueueLocationStream:
    """Single-consumer async stream of location samples.

    `push()` must be called from the event loop thread; platform callbacks running
    on other threads use `push_threadsafe()`. With a `policy`, samples that arrive
    too soon or too close to the last delivered one are dropped.
    """

    def __init__(
        self,
        policy: SamplingPolicy | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._policy = policy
        self._loop = loop
        self._clock = clock
        self._queue: asyncio.Queue[GeoPoint | None] = asyncio.Queue()
        self._closed = False
        self._last: tuple[float, GeoPoint] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _accepts(self, point: GeoPoint, now: float) -> bool:
        if self._policy is None or self._last is None:
            return True
        last_at, last_point = self._last
        if now - last_at < self._policy.min_interval_seconds:
            return False
        return haversine_m(last_point, point) >= self._policy.min_distance_m

    def push(self, point: GeoPoint) -> bool:
        """Enqueue a sample; returns False if it was dropped."""
        if self._closed:
            return False
        now = self._clock()
        if not self._accepts(point, now):
            logger.debug("Dropping location sample %s (sampling policy)", point)
            return False
        self._last = (now, point)
        self._queue.put_nowait(point)
        return True

    def push_threadsafe(self, point: GeoPoint) -> None:
        if self._loop is None:
            raise RuntimeError("stream is not bound to an event loop yet")
        self._loop.call_soon_threadsafe(self.push, point)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # Wake a consumer blocked in __anext__.
        self._queue.put_nowait(None)

    def __aiter__(self) -> "QueueLocationStream":
        return self

    async def __anext__(self) -> GeoPoint:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None or self._closed:
            raise StopAsyncIteration
        return item


class FixedLocationProvider:
    """Location source pinned to one point (CLI checks, simulations, tests)."""

    def __init__(self, point: GeoPoint, *, granted: bool = True):
        self._point = point
        self._granted = granted

    async def request_permission(self) -> bool:
        return self._granted

    def subscribe(self, policy: SamplingPolicy) -> QueueLocationStream:
        stream = QueueLocationStream(policy)
        stream.push(self._point)
        return stream

    async def current_location(self) -> GeoPoint:
        return self._point


class LoggingNotificationDispatcher:
    """Dispatcher that only logs; real delivery belongs to the host platform.

    The last `history` notifications are kept in `sent` for CLI output and inspection.
    """

    def __init__(self, history: int = 100) -> None:
        self.sent: deque[tuple[str, str, dict[str, Any]]] = deque(maxlen=history)

    async def send_local(self, title: str, body: str, data: dict[str, Any]) -> None:
        logger.info("Notification: %s | %s", title, body)
        self.sent.append((title, body, dict(data)))
