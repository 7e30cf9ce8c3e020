"""
Proximity watcher.

Turns a stream of device location samples into "minyan nearby" notifications:

1. `start(config)` asks for location permission, loads the dedup ledger and opens a
   location subscription consumed by a single background task.
2. Each sample runs `check_nearby_events(point)`: report the location, query today's
   upcoming events around the point, keep those within `radius_m` (great-circle,
   authoritative over the API's coarse filter) that were not notified yet, dispatch
   a notification and record the event in the ledger.
3. `stop()` closes the subscription at once; a check already in flight finishes.

Checks are single-flight: an `asyncio.Lock` serializes the background loop and
manual `check_now()` calls, so the ledger never sees concurrent writers and an
event cannot be announced twice by overlapping checks.

The watcher runs unattended, so failures of collaborators (network, dispatcher)
are logged and absorbed; only `start()` reports a problem, as `False`.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable

from minyanmap.config.settings import Settings
from minyanmap.core.geo import GeoPoint, haversine_m
from minyanmap.core.time import now_in, today_window
from minyanmap.domain.models import ProximityConfig
from minyanmap.proximity.ledger import NotificationLedger
from minyanmap.proximity.notify import build_proximity_notification
from minyanmap.proximity.ports import (
    CurrentLocationProvider,
    EventQueryService,
    LocationProvider,
    LocationStream,
    NotificationDispatcher,
    SamplingPolicy,
)

logger = logging.getLogger(__name__)


class WatcherState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ProximityWatcher:
    """Background service emitting at most one proximity notification per event."""

    def __init__(
        self,
        *,
        events: EventQueryService,
        locations: LocationProvider,
        dispatcher: NotificationDispatcher,
        ledger: NotificationLedger,
        settings: Settings,
        current_location: CurrentLocationProvider | None = None,
        sampling: SamplingPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._events = events
        self._locations = locations
        self._dispatcher = dispatcher
        self._ledger = ledger
        self._settings = settings
        self._current_location = current_location
        self._sampling = sampling or SamplingPolicy(
            min_interval_seconds=settings.proximity.min_interval_seconds,
            min_distance_m=settings.proximity.min_distance_m,
        )
        self._clock = clock or (lambda: now_in(settings.app.timezone))

        self._config = ProximityConfig(enabled=settings.proximity.enabled, radius_m=settings.proximity.radius_m)
        self._state = WatcherState.STOPPED
        self._stream: LocationStream | None = None
        self._task: asyncio.Task[None] | None = None
        self._check_lock = asyncio.Lock()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WatcherState.RUNNING

    @property
    def config(self) -> ProximityConfig:
        return self._config

    async def start(self, config: ProximityConfig) -> bool:
        """Start watching; returns False if disabled, denied, or the subscription failed."""
        if self.is_running:
            logger.info("Proximity watcher already running.")
            return True

        self._config = config
        if not config.enabled:
            logger.info("Proximity notifications disabled.")
            return False

        try:
            granted = await self._locations.request_permission()
        except Exception as e:
            logger.warning("Location permission request failed: %s", str(e))
            return False
        if not granted:
            logger.info("Location permission not granted; proximity watcher stays stopped.")
            return False

        self._ledger.load()

        try:
            stream = self._locations.subscribe(self._sampling)
        except Exception:
            logger.exception("Could not open location subscription.")
            return False

        self._stream = stream
        self._state = WatcherState.RUNNING
        self._task = asyncio.create_task(self._consume(stream), name="proximity-watcher")
        logger.info("Proximity watcher started (radius=%.0fm).", config.radius_m)
        return True

    def stop(self) -> None:
        """Close the location subscription. Idempotent."""
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
        if self._state is WatcherState.RUNNING:
            self._state = WatcherState.STOPPED
            logger.info("Proximity watcher stopped.")

    async def wait_closed(self) -> None:
        """Wait for the background loop to drain after `stop()` (an in-flight check completes)."""
        task = self._task
        if task is not None and self._stream is None:
            await task

    def update_config(self, config: ProximityConfig) -> None:
        self._config = config
        if not config.enabled and self.is_running:
            self.stop()

    async def check_now(self, point: GeoPoint | None = None) -> list[str]:
        """One-shot check at `point` (or the current location); does not change the state."""
        if point is None:
            if self._current_location is None:
                logger.warning("No current-location source configured; skipping manual check.")
                return []
            try:
                point = await self._current_location.current_location()
            except Exception as e:
                logger.warning("Could not get current location for manual check: %s", str(e))
                return []
        return await self.check_nearby_events(point)

    async def _consume(self, stream: LocationStream) -> None:
        async for point in stream:
            if stream is not self._stream:
                break
            try:
                await self.check_nearby_events(point)
            except Exception:
                # Nothing may end the sampling loop.
                logger.exception("Unexpected error during proximity check at %s", point)

    async def check_nearby_events(self, point: GeoPoint) -> list[str]:
        """Notify about today's upcoming events within the radius; returns notified event ids."""
        async with self._check_lock:
            return await self._check(point)

    async def _check(self, point: GeoPoint) -> list[str]:
        if not self._ledger.loaded:
            self._ledger.load()

        config = self._config
        tz = self._settings.app.timezone
        logger.debug("Checking nearby events at [%s, %s] radius=%.0fm", point.lat, point.lon, config.radius_m)

        try:
            await self._events.report_location(point)
        except Exception as e:
            logger.warning("Location report failed: %s", str(e))

        on_or_after, before = today_window(self._clock(), tz)
        try:
            events = await self._events.list_nearby(point, config.radius_m / 1000, on_or_after, before)
        except Exception as e:
            logger.warning("Nearby events query failed: %s", str(e))
            return []

        notified: list[str] = []
        for event in events:
            if not (on_or_after <= event.date < before):
                continue
            if self._ledger.was_notified(event.id):
                logger.debug("Event %s already notified, skipping.", event.id)
                continue

            distance = haversine_m(point, event.point)
            if distance > config.radius_m:
                logger.debug("Event %s outside radius (%.0fm > %.0fm).", event.id, distance, config.radius_m)
                continue

            note = build_proximity_notification(
                event, distance, settings=self._settings.notifications, timezone=tz
            )
            try:
                await self._dispatcher.send_local(note.title, note.body, note.data)
            except Exception as e:
                # Not marked: the next check retries this event.
                logger.warning("Notification dispatch failed for event %s: %s", event.id, str(e))
                continue

            self._ledger.mark_notified(event)
            notified.append(event.id)
            logger.info("Proximity notification sent for event %s (%.0fm).", event.id, distance)

        return notified
