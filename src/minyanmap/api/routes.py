"""
API routes.

Endpoints:
- GET  `/health`: liveness probe.
- GET  `/api/grid-size`: grid cell size (km) for a visible latitude span.
- POST `/api/clusters`: cluster an event list for the map renderer.

Cluster payloads expose the sector center, radius, member count, urgency flag and
member ids, but never member coordinates.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from minyanmap.clustering.grid import Cluster, cluster_events, grid_size_for_span
from minyanmap.config.overrides import apply_settings_overrides
from minyanmap.config.settings import get_settings
from minyanmap.domain.models import Event

router = APIRouter()


class ClusterRequest(BaseModel):
    events: list[Event] = Field(default_factory=list)
    latitude_delta: float | None = Field(default=None, gt=0)
    grid_size_km: float | None = Field(default=None, gt=0)
    settings_overrides: dict[str, Any] | None = None


class CenterOut(BaseModel):
    lat: float
    lon: float


class ClusterOut(BaseModel):
    id: str
    center: CenterOut
    radius_m: float
    radius_deg: float
    count: int
    has_urgent: bool
    event_ids: list[str]

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "ClusterOut":
        return cls(
            id=cluster.id,
            center=CenterOut(lat=cluster.center.lat, lon=cluster.center.lon),
            radius_m=cluster.radius_m,
            radius_deg=cluster.radius_deg,
            count=cluster.count,
            has_urgent=cluster.has_urgent,
            event_ids=[e.id for e in cluster.members],
        )


class ClusterResponse(BaseModel):
    grid_size_km: float
    clusters: list[ClusterOut]


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/api/grid-size")
def get_grid_size(latitude_delta: float = Query(..., gt=0)) -> dict:
    settings = get_settings()
    return {"grid_size_km": grid_size_for_span(latitude_delta, settings.clustering)}


@router.post("/api/clusters", response_model=ClusterResponse)
def post_clusters(request: ClusterRequest) -> ClusterResponse:
    """Cluster `events` with an explicit grid size, or one derived from `latitude_delta`."""
    try:
        settings = apply_settings_overrides(get_settings(), request.settings_overrides)
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    cfg = settings.clustering
    if request.grid_size_km is not None:
        size_km = request.grid_size_km
    elif request.latitude_delta is not None:
        size_km = grid_size_for_span(request.latitude_delta, cfg)
    else:
        size_km = cfg.default_grid_size_km

    clusters = cluster_events(request.events, size_km, settings=cfg)
    return ClusterResponse(grid_size_km=size_km, clusters=[ClusterOut.from_cluster(c) for c in clusters])
