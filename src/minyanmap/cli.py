"""
MinyanMap CLI entrypoint.

Quick local tooling around the geospatial core without the mobile app:
- `cluster`: cluster an events JSON file the way the map does
- `grid-size`: show the grid cell size used for a visible latitude span
- `check`: run one proximity check at a point against the events API
- `ledger`: show the (pruned) proximity notification ledger
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

from minyanmap.clustering.grid import cluster_events, grid_size_for_span
from minyanmap.config.settings import get_settings
from minyanmap.core.geo import GeoPoint
from minyanmap.core.logging import configure_logging
from minyanmap.domain.models import ProximityConfig
from minyanmap.ingestion.events_client import EventsApiClient, parse_events
from minyanmap.proximity.ledger import build_ledger
from minyanmap.proximity.ports import FixedLocationProvider, LoggingNotificationDispatcher
from minyanmap.proximity.watcher import ProximityWatcher


def _cmd_cluster(args: argparse.Namespace) -> int:
    settings = get_settings()
    events = parse_events(json.loads(Path(args.events).read_text(encoding="utf-8")))

    if args.grid_size_km is not None:
        size_km = float(args.grid_size_km)
    elif args.latitude_delta is not None:
        size_km = grid_size_for_span(float(args.latitude_delta), settings.clustering)
    else:
        size_km = settings.clustering.default_grid_size_km

    clusters = cluster_events(events, size_km, settings=settings.clustering)
    payload = [
        {
            "id": c.id,
            "center": {"lat": c.center.lat, "lon": c.center.lon},
            "radius_m": round(c.radius_m, 1),
            "count": c.count,
            "has_urgent": c.has_urgent,
            "event_ids": [e.id for e in c.members],
        }
        for c in clusters
    ]
    print(json.dumps({"grid_size_km": size_km, "clusters": payload}, ensure_ascii=False, indent=2))
    return 0


def _cmd_grid_size(args: argparse.Namespace) -> int:
    settings = get_settings()
    print(grid_size_for_span(float(args.latitude_delta), settings.clustering))
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    settings = get_settings()
    point = GeoPoint(lat=float(args.lat), lon=float(args.lon))
    location = FixedLocationProvider(point)
    dispatcher = LoggingNotificationDispatcher()
    watcher = ProximityWatcher(
        events=EventsApiClient(settings),
        locations=location,
        current_location=location,
        dispatcher=dispatcher,
        ledger=build_ledger(settings),
        settings=settings,
    )
    radius_m = float(args.radius_m) if args.radius_m is not None else settings.proximity.radius_m
    watcher.update_config(ProximityConfig(enabled=True, radius_m=radius_m))

    notified = asyncio.run(watcher.check_now())
    for title, body, _ in dispatcher.sent:
        print(f"{title}: {body}")
    if not notified:
        print("No new nearby events.")
    return 0


def _cmd_ledger(_: argparse.Namespace) -> int:
    ledger = build_ledger(get_settings())
    ledger.load()
    rows: list[dict[str, Any]] = [r.model_dump(mode="json", by_alias=True) for r in ledger.records()]
    print(json.dumps(rows, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the MinyanMap CLI."""
    parser = argparse.ArgumentParser(prog="minyanmap")
    sub = parser.add_subparsers(dest="command", required=True)

    cl = sub.add_parser("cluster", help="Cluster events from a JSON file (API format) into map sectors.")
    cl.add_argument("--events", required=True, help="Path to a JSON list of events")
    cl.add_argument("--grid-size-km", type=float, default=None)
    cl.add_argument("--latitude-delta", type=float, default=None, help="Visible latitude span in degrees")
    cl.set_defaults(func=_cmd_cluster)

    gs = sub.add_parser("grid-size", help="Grid cell size (km) for a visible latitude span.")
    gs.add_argument("latitude_delta", type=float)
    gs.set_defaults(func=_cmd_grid_size)

    ch = sub.add_parser("check", help="Run one proximity check at a point against the events API.")
    ch.add_argument("--lat", required=True, type=float)
    ch.add_argument("--lon", required=True, type=float)
    ch.add_argument("--radius-m", type=float, default=None)
    ch.set_defaults(func=_cmd_check)

    lg = sub.add_parser("ledger", help="Show the proximity notification ledger (expired records pruned).")
    lg.set_defaults(func=_cmd_ledger)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m minyanmap.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
