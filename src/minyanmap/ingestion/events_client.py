"""
Events API client.

Implements the event query side of the proximity watcher against the remote
MinyanMap API:
- `GET  /api/events?lat=..&lng=..&radius=<km>` returns open (not full) events around a point
- `POST /api/users/location` records the user's last known position

The API's radius filter is coarse and it has no time filter for this query, so the
`[on_or_after, before)` window is applied here. Malformed items are skipped with a
warning rather than failing the whole response.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from minyanmap.config.settings import Settings
from minyanmap.core.geo import GeoPoint
from minyanmap.core.http import get_json, post_json
from minyanmap.domain.models import Event

logger = logging.getLogger(__name__)


def parse_events(payload: Any) -> list[Event]:
    """Validate a JSON list of events, dropping invalid items."""
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON list of events, got {type(payload).__name__}")
    out: list[Event] = []
    for item in payload:
        try:
            out.append(Event.model_validate(item))
        except ValidationError as e:
            item_id = item.get("id") if isinstance(item, dict) else None
            logger.warning("Skipping malformed event %s: %s", item_id, e.error_count())
    return out


class EventsApiClient:
    """HTTP implementation of the `EventQueryService` port."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def _url(self, path: str) -> str:
        return self._settings.events_api.base_url.rstrip("/") + path

    def _headers(self) -> dict[str, str]:
        token = self._settings.events_api.api_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def list_nearby(
        self, point: GeoPoint, radius_km: float, on_or_after: datetime, before: datetime
    ) -> list[Event]:
        """Return events within ~`radius_km` of `point` starting in `[on_or_after, before)`.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status codes.
            ValueError: If the body is not a JSON list.
        """
        params = {"lat": point.lat, "lng": point.lon, "radius": radius_km}
        payload = await get_json(
            self._url(self._settings.events_api.events_path),
            params=params,
            headers=self._headers(),
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        events = parse_events(payload)
        return [e for e in events if on_or_after <= e.date < before]

    async def report_location(self, point: GeoPoint) -> None:
        await post_json(
            self._url(self._settings.events_api.location_path),
            payload={"latitude": point.lat, "longitude": point.lon},
            headers=self._headers(),
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
