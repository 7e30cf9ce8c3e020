from __future__ import annotations

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from minyanmap.config.settings import get_settings
from minyanmap.core.geo import GeoPoint
from minyanmap.domain.models import Event
from minyanmap.proximity.ports import QueueLocationStream

PARIS_TZ = ZoneInfo("Europe/Paris")
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=PARIS_TZ)
HERE = GeoPoint(lat=48.8566, lon=2.3522)


def make_event(event_id: str, lat: float = 48.8576, lon: float = 2.3532, *, hour: int = 18, day: int = 19) -> Event:
    return Event(
        id=event_id,
        title=f"Minyan {event_id}",
        type="MINCHA",
        date=datetime(2026, 10, day, hour, 0, tzinfo=PARIS_TZ),
        latitude=lat,
        longitude=lon,
        capacity=10,
        current_count=6,
    )


class StubEvents:
    def __init__(self, events=None, *, fail_query=False, fail_report=False, delay=0.0):
        self.events = list(events or [])
        self.fail_query = fail_query
        self.fail_report = fail_report
        self.delay = delay
        self.queries: list[tuple] = []
        self.reports: list[GeoPoint] = []
        self.queried = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    async def report_location(self, point):
        self.reports.append(point)
        if self.fail_report:
            raise ConnectionError("report failed")

    async def list_nearby(self, point, radius_km, on_or_after, before):
        self.queries.append((point, radius_km, on_or_after, before))
        self.queried.set()
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_query:
                raise ConnectionError("events api down")
            return list(self.events)
        finally:
            self.in_flight -= 1


class StubDispatcher:
    def __init__(self, *, fail_ids=(), delay=0.0):
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.sent: list[tuple[str, str, dict]] = []
        self.delivered = asyncio.Event()

    async def send_local(self, title, body, data):
        if self.delay:
            await asyncio.sleep(self.delay)
        if data.get("eventId") in self.fail_ids:
            raise RuntimeError("notification service unavailable")
        self.sent.append((title, body, data))
        self.delivered.set()


class StubLocations:
    def __init__(self, *, granted=True, current=HERE):
        self.granted = granted
        self.current = current
        self.permission_requests = 0
        self.streams: list[QueueLocationStream] = []
        self.policies = []

    async def request_permission(self):
        self.permission_requests += 1
        return self.granted

    def subscribe(self, policy):
        self.policies.append(policy)
        stream = QueueLocationStream()
        self.streams.append(stream)
        return stream

    async def current_location(self):
        return self.current


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture(autouse=True)
def _frozen_ledger_time(monkeypatch):
    monkeypatch.setattr("minyanmap.proximity.ledger.time.time", lambda: NOW.timestamp())
