from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt
from typing import Protocol

"""
Geospatial primitives.

We keep a tiny geometry layer here so decoders, the overlay manager and query
orchestration agree on distance/area math without pulling in heavier GIS dependencies.

Coordinate order conventions:
- GeoJSON and shapefiles store `(lon, lat)`.
- Everything rendered or stored on overlay objects is `(lat, lon)`.
"""

EARTH_RADIUS_KM = 6371.0


class LatLon(Protocol):
    """Anything exposing decimal-degree `latitude` / `longitude` attributes."""

    @property
    def latitude(self) -> float: ...

    @property
    def longitude(self) -> float: ...


@dataclass(frozen=True)
class BoundingBox:
    """A west/south/east/north box in decimal degrees."""

    west: float
    south: float
    east: float
    north: float

    def as_viewbox(self) -> str:
        """Render as `west,north,east,south` (Nominatim `viewbox` order)."""
        return f"{self.west},{self.north},{self.east},{self.south}"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers between two degree coordinates."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    h = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(h), sqrt(1 - h))


def distance_km(a: LatLon, b: LatLon) -> float:
    """Haversine distance between two points (R = 6371 km)."""
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def polygon_area_sq_km(ring: Sequence[LatLon]) -> float:
    """Approximate area of a closed ring on the sphere, in square kilometers.

    Spherical-excess approximation: for each consecutive vertex pair (wrapping around)
    accumulate `(lon2 - lon1) * (2 + sin(lat1) + sin(lat2))` in radians, then take
    `|sum| * R^2 / 2`. Orientation is absorbed by the absolute value.

    Not exact for very large rings or rings crossing the antimeridian.

    Raises:
        ValueError: If the ring has fewer than 3 vertices.
    """
    n = len(ring)
    if n < 3:
        raise ValueError(f"polygon area needs at least 3 vertices, got {n}")

    total = 0.0
    for i in range(n):
        p1 = ring[i]
        p2 = ring[(i + 1) % n]
        lon1 = radians(p1.longitude)
        lon2 = radians(p2.longitude)
        total += (lon2 - lon1) * (2 + sin(radians(p1.latitude)) + sin(radians(p2.latitude)))
    return abs(total * EARTH_RADIUS_KM * EARTH_RADIUS_KM / 2)


def lonlat_to_latlon(pair: Sequence[float]) -> tuple[float, float]:
    """Swap a GeoJSON `(lon, lat[, alt])` position into `(lat, lon)`; altitude is dropped."""
    if len(pair) < 2:
        raise ValueError(f"position needs at least 2 values, got {len(pair)}")
    return float(pair[1]), float(pair[0])


def latlon_to_lonlat(pair: Sequence[float]) -> tuple[float, float]:
    """Swap a `(lat, lon)` pair into GeoJSON `(lon, lat)` order."""
    if len(pair) < 2:
        raise ValueError(f"position needs at least 2 values, got {len(pair)}")
    return float(pair[1]), float(pair[0])


def bounds_of(pairs: Iterable[tuple[float, float]]) -> BoundingBox | None:
    """Bounding box of `(lat, lon)` pairs, or None when there are none."""
    west = south = float("inf")
    east = north = float("-inf")
    seen = False
    for lat, lon in pairs:
        seen = True
        west = min(west, lon)
        east = max(east, lon)
        south = min(south, lat)
        north = max(north, lat)
    if not seen:
        return None
    return BoundingBox(west=west, south=south, east=east, north=north)


def box_around(lat: float, lon: float, half_width_deg: float) -> BoundingBox:
    """Square box of +/- `half_width_deg` around a point (no antimeridian wrapping)."""
    d = float(half_width_deg)
    return BoundingBox(west=lon - d, south=lat - d, east=lon + d, north=lat + d)
