"""Proximity notification wording."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo

from minyanmap.config.settings import NotificationSettings
from minyanmap.domain.models import Event


@dataclass(frozen=True)
class ProximityNotification:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


def format_distance(distance_m: float) -> str:
    """`"420 m"` below one kilometer, `"1.3 km"` from there on."""
    if distance_m >= 1000:
        return f"{distance_m / 1000:.1f} km"
    return f"{math.floor(distance_m + 0.5)} m"


def build_proximity_notification(
    event: Event,
    distance_m: float,
    *,
    settings: NotificationSettings,
    timezone: str,
) -> ProximityNotification:
    label = settings.type_labels.get(event.type.value, event.type.value.replace("_", " ").title())
    start = event.date.astimezone(ZoneInfo(timezone)).strftime(settings.time_format)
    values = {
        "label": label,
        "title": event.title,
        "distance": format_distance(distance_m),
        "time": start,
    }
    return ProximityNotification(
        title=settings.title_template.format(**values),
        body=settings.body_template.format(**values),
        data={"type": "proximity", "eventId": event.id},
    )
