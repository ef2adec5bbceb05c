"""
GeoDash CLI entrypoint.

This CLI is intended for quick local checks without a map frontend: decode a file and
summarize it, or run one spatial query. It delegates to the same ingestion pipeline
and `QueryService` as the API, with a throwaway overlay.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from geodash.clients.nominatim import NominatimPlaceSearch
from geodash.clients.osrm import OsrmRouter
from geodash.clients.photon import PhotonGeocoder
from geodash.config.settings import Settings, get_settings
from geodash.core.logging import configure_logging
from geodash.domain.errors import QueryError
from geodash.domain.models import LoadError, LoadOk, LoadRaster, Point
from geodash.ingestion.pipeline import ingest
from geodash.overlay.state import OverlayManager
from geodash.queries.service import QueryService


def _parse_latlon(value: str) -> Point:
    """Parse `LAT,LON` into a Point."""
    if "," not in value:
        raise argparse.ArgumentTypeError(f"Invalid vertex '{value}', expected LAT,LON")
    lat, lon = value.split(",", 1)
    try:
        return Point(latitude=float(lat), longitude=float(lon))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid vertex '{value}': {e}") from e


def _build_queries(settings: Settings, overlay: OverlayManager) -> QueryService:
    return QueryService(
        overlay,
        geocoder=PhotonGeocoder(settings),
        router=OsrmRouter(settings),
        places=NominatimPlaceSearch(settings),
        settings=settings,
    )


def _emit(payload: dict[str, Any], *, as_json: bool, text: str) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(text)


def _cmd_inspect(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = Path(args.path)
    result = ingest(path.name, path.read_bytes(), settings)

    if isinstance(result, LoadError):
        print(f"error: {result.kind.value}: {result.message}", file=sys.stderr)
        return 1

    if isinstance(result, LoadRaster):
        ref = result.raster
        payload = {
            "kind": "raster",
            "width": ref.width,
            "height": ref.height,
            "count": ref.count,
            "crs": ref.crs,
            "resolution": list(ref.resolution),
            "geographic_bounds": vars(ref.geographic_bounds) if ref.geographic_bounds else None,
        }
        _emit(payload, as_json=args.json, text=result.message)
        return 0

    assert isinstance(result, LoadOk)
    collection = result.collection
    bounds = collection.bounds()
    payload = {
        "kind": collection.kind,
        "points": len(collection.points),
        "shapes": len(collection.shapes),
        "skipped": result.skipped,
        "bounds": vars(bounds) if bounds else None,
    }
    text = result.message
    if result.skipped:
        text += f" ({result.skipped} skipped)"
    _emit(payload, as_json=args.json, text=text)
    return 0


def _cmd_distance(args: argparse.Namespace) -> int:
    settings = get_settings()
    queries = _build_queries(settings, OverlayManager())
    result = asyncio.run(queries.distance_between(args.start, args.end))
    payload = {"start": result.start.model_dump(), "end": result.end.model_dump(), "distance_km": result.distance_km}
    _emit(payload, as_json=args.json, text=f"Distance: {result.distance_km:.2f} km")
    return 0


def _cmd_route(args: argparse.Namespace) -> int:
    settings = get_settings()
    queries = _build_queries(settings, OverlayManager())
    result = asyncio.run(queries.route_between(args.start, args.end))
    payload = {
        "start": result.start.model_dump(),
        "end": result.end.model_dump(),
        "distance_km": result.distance_km,
        "vertices": len(result.route.path),
    }
    _emit(payload, as_json=args.json, text=f"Route: {result.distance_km:.2f} km")
    return 0


def _cmd_area(args: argparse.Namespace) -> int:
    overlay = OverlayManager()
    overlay.begin_polygon()
    result = None
    for vertex in args.vertex:
        result = overlay.add_polygon_vertex(vertex)
    if result is None or result.area_sq_km is None:
        print(f"Points: {len(args.vertex)} (need >=3)", file=sys.stderr)
        return 1
    _emit(
        {"vertex_count": result.vertex_count, "area_sq_km": result.area_sq_km},
        as_json=args.json,
        text=f"Polygon area: {result.area_sq_km:.3f} sq km",
    )
    return 0


def _cmd_nearby(args: argparse.Namespace) -> int:
    settings = get_settings()
    queries = _build_queries(settings, OverlayManager())

    async def run():
        if args.lat is not None and args.lon is not None:
            queries.track_location(args.lat, args.lon)
        elif args.near:
            await queries.search_place(args.near)
        return await queries.nearby(args.term)

    result = asyncio.run(run())
    payload = {"count": result.count, "places": [p.model_dump() for p in result.places]}
    lines = [f"{result.count} places found"] + [f"  - {p.label} ({p.latitude:.5f}, {p.longitude:.5f})" for p in result.places]
    _emit(payload, as_json=args.json, text="\n".join(lines))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the GeoDash CLI."""
    parser = argparse.ArgumentParser(prog="geodash")
    sub = parser.add_subparsers(dest="command", required=True)

    ins = sub.add_parser("inspect", help="Decode a CSV/GeoJSON/SHP(zip)/TIF file and summarize it.")
    ins.add_argument("path")
    ins.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    ins.set_defaults(func=_cmd_inspect)

    dist = sub.add_parser("distance", help="Great-circle distance between two place names.")
    dist.add_argument("start")
    dist.add_argument("end")
    dist.add_argument("--json", action="store_true")
    dist.set_defaults(func=_cmd_distance)

    rt = sub.add_parser("route", help="Driving route between two place names (OSRM).")
    rt.add_argument("start")
    rt.add_argument("end")
    rt.add_argument("--json", action="store_true")
    rt.set_defaults(func=_cmd_route)

    area = sub.add_parser("area", help="Approximate area of a polygon given as LAT,LON vertices.")
    area.add_argument("vertex", nargs="+", type=_parse_latlon, help="Vertex as LAT,LON (repeat 3+ times)")
    area.add_argument("--json", action="store_true")
    area.set_defaults(func=_cmd_area)

    near = sub.add_parser("nearby", help="Search places around a location (Nominatim).")
    near.add_argument("term")
    near.add_argument("--near", type=str, default=None, help="Place name to use as the base point")
    near.add_argument("--lat", type=float, default=None)
    near.add_argument("--lon", type=float, default=None)
    near.add_argument("--json", action="store_true")
    near.set_defaults(func=_cmd_nearby)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m geodash.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "nearby" and (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except QueryError as e:
        print(f"error: {e.kind.value}: {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"error: cannot read input: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
