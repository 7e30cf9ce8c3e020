"""
Domain models (Pydantic).

These types are the contract between the geospatial core and its collaborators:
- `Event`: what the remote events API returns (read-only for the core)
- `NotifiedRecord`: one entry of the proximity dedup ledger (persisted as JSON)
- `ProximityConfig`: caller-supplied watcher configuration

Coordinates are validated here, at ingestion, so the geometry helpers can stay total.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from minyanmap.core.geo import GeoPoint


class EventType(str, Enum):
    SHEVA_BERAKHOT = "SHEVA_BERAKHOT"
    BRIT_MILA = "BRIT_MILA"
    MINCHA = "MINCHA"
    ARVIT = "ARVIT"
    OTHER = "OTHER"


class Event(BaseModel):
    """A minyan event as returned by the events API (camelCase aliases accepted)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str = ""
    type: EventType = EventType.OTHER
    date: datetime
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    capacity: int = Field(10, ge=0, alias="maxParticipants")
    current_count: int = Field(0, ge=0, alias="currentCount")
    address: str | None = None
    city: str | None = None

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # The API serializes UTC instants; a naive value would not compare with aware clocks.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lon=self.longitude)

    @property
    def missing(self) -> int:
        """Participants still needed to reach capacity."""
        return self.capacity - self.current_count


class NotifiedRecord(BaseModel):
    """Ledger entry: `event_id` was notified at `notified_at_ms` (epoch milliseconds)."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(..., alias="eventId")
    notified_at_ms: int = Field(..., alias="notifiedAt")
    event_date: datetime = Field(..., alias="eventDate")


class ProximityConfig(BaseModel):
    """Proximity watcher configuration: on/off switch plus radius in meters."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    radius_m: float = Field(500, gt=0)
