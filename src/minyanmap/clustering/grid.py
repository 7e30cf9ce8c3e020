"""
Privacy-preserving grid clustering for the map.

Events are quantized onto a fixed lat/lon grid ("sectors"). Each sector becomes one
`Cluster` whose displayed center is the sector's geometric midpoint, never the
centroid of its members, so a single-event cluster does not reveal where the event
is. Sector boundaries depend only on the grid size, so repeated queries (or a
shuffled input) always produce the same centers and memberships.

The grid size follows the map zoom through `grid_size_for_span`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from minyanmap.config.settings import ClusteringSettings
from minyanmap.core.geo import GeoPoint, haversine_m
from minyanmap.domain.models import Event


@dataclass(frozen=True)
class Cluster:
    """One map aggregate: a grid sector with the events inside it."""

    id: str
    center: GeoPoint
    members: tuple[Event, ...]
    # Euclidean radius in degrees (what a lat/lon renderer draws).
    radius_deg: float
    # Great-circle radius; every member is within `radius_m` of `center`.
    radius_m: float
    has_urgent: bool

    @property
    def count(self) -> int:
        return len(self.members)


def _sector_key(lat: float, lon: float, grid_deg: float) -> tuple[int, int]:
    return (math.floor(lat / grid_deg), math.floor(lon / grid_deg))


def _sector_center(key: tuple[int, int], grid_deg: float) -> GeoPoint:
    return GeoPoint(
        lat=key[0] * grid_deg + grid_deg / 2,
        lon=key[1] * grid_deg + grid_deg / 2,
    )


def is_urgent(event: Event, *, max_missing: int = 3) -> bool:
    """True when an event is only a few participants short of its quorum."""
    return 1 <= event.missing <= max_missing


def grid_size_for_span(latitude_delta: float, settings: ClusteringSettings | None = None) -> float:
    """Pick a grid cell size (km) for the visible latitude span (degrees) of the map."""
    cfg = settings or ClusteringSettings()
    for threshold in cfg.span_thresholds:
        if latitude_delta < threshold.max_span_deg:
            return threshold.grid_size_km
    return cfg.wide_grid_size_km


def cluster_events(
    events: Iterable[Event],
    grid_size_km: float | None = None,
    *,
    settings: ClusteringSettings | None = None,
) -> list[Cluster]:
    """Group events into grid-sector clusters.

    Every input event lands in exactly one cluster. Clusters are returned ordered by
    sector (south-west first); members keep their input order.

    Raises:
        ValueError: If the grid size is not positive.
    """
    cfg = settings or ClusteringSettings()
    size_km = float(grid_size_km if grid_size_km is not None else cfg.default_grid_size_km)
    if size_km <= 0:
        raise ValueError("grid_size_km must be > 0")
    grid_deg = size_km / cfg.km_per_degree

    sectors: dict[tuple[int, int], list[Event]] = {}
    for event in events:
        sectors.setdefault(_sector_key(event.latitude, event.longitude, grid_deg), []).append(event)

    clusters: list[Cluster] = []
    for key in sorted(sectors):
        members = sectors[key]
        center = _sector_center(key, grid_deg)

        max_deg = max(math.hypot(e.latitude - center.lat, e.longitude - center.lon) for e in members)
        max_m = max(haversine_m(center, e.point) for e in members)

        clusters.append(
            Cluster(
                id=f"sector-{key[0]}-{key[1]}",
                center=center,
                members=tuple(members),
                radius_deg=max(max_deg * cfg.radius_margin, grid_deg * cfg.min_radius_fraction),
                radius_m=max(max_m * cfg.radius_margin, size_km * 1000 * cfg.min_radius_fraction),
                has_urgent=any(is_urgent(e, max_missing=cfg.urgent_max_missing) for e in members),
            )
        )
    return clusters
