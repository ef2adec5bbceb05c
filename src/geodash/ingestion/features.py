"""
GeoJSON feature -> `Point` / `Shape` conversion shared by the vector and archive decoders.

Coordinates arrive in GeoJSON `(lon, lat)` order and are stored latitude-first.
Multi-part geometries are exploded: one `Point` per MultiPoint member, one `Shape`
per LineString/Polygon part. Properties are stringified into attributes.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from geodash.core.geo import lonlat_to_latlon
from geodash.domain.models import CollectionKind, GeometryCollection, Point, Shape


def stringify(value: Any) -> str:
    """Render a property value as display text (None -> "", containers/bools -> JSON)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple, bool)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _position(raw: Any) -> tuple[float, float]:
    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"position must be an array, got {type(raw).__name__}")
    lat, lon = lonlat_to_latlon(raw)
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValueError(f"position out of range: {raw!r}")
    return lat, lon


def _path(raw: Any, *, min_length: int) -> list[tuple[float, float]]:
    if not isinstance(raw, (list, tuple)):
        raise ValueError("coordinate path must be an array")
    path = [_position(p) for p in raw]
    if len(path) < min_length:
        raise ValueError(f"coordinate path needs at least {min_length} positions")
    return path


def _polygon_rings(raw: Any) -> list[list[tuple[float, float]]]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValueError("polygon needs at least one ring")
    return [_path(ring, min_length=3) for ring in raw]


class FeatureCollector:
    """Accumulates decoded features for a single decode call.

    A feature is converted all-or-nothing: if any part of its geometry is malformed the
    whole feature is skipped and counted, and nothing from it is kept.
    """

    def __init__(self, kind: CollectionKind, *, label_keys: Iterable[str] = ("name",)):
        self.kind = kind
        self.points: list[Point] = []
        self.shapes: list[Shape] = []
        self.skipped = 0
        self._label_keys = [k.lower() for k in label_keys]

    @property
    def count(self) -> int:
        return len(self.points) + len(self.shapes)

    def _label(self, attributes: dict[str, str]) -> str | None:
        lowered = {k.lower(): v for k, v in attributes.items()}
        for key in self._label_keys:
            if lowered.get(key):
                return lowered[key]
        return None

    def add_feature(self, feature: Any, *, extra: dict[str, str] | None = None) -> bool:
        """Convert one GeoJSON Feature dict; returns False (and counts a skip) on defects."""
        if not isinstance(feature, dict) or not isinstance(feature.get("geometry"), dict):
            self.skipped += 1
            return False

        properties = feature.get("properties")
        attributes = {str(k): stringify(v) for k, v in properties.items()} if isinstance(properties, dict) else {}
        if extra:
            attributes.update(extra)
        label = self._label(attributes)

        points: list[Point] = []
        shapes: list[Shape] = []
        try:
            self._convert(feature["geometry"], label, attributes, points, shapes)
        except (ValueError, TypeError, RecursionError):
            self.skipped += 1
            return False
        if not points and not shapes:
            self.skipped += 1
            return False

        self.points.extend(points)
        self.shapes.extend(shapes)
        return True

    def _convert(
        self,
        geometry: dict[str, Any],
        label: str | None,
        attributes: dict[str, str],
        points: list[Point],
        shapes: list[Shape],
    ) -> None:
        gtype = geometry.get("type")
        coords = geometry.get("coordinates")

        if gtype == "GeometryCollection":
            members = geometry.get("geometries")
            if not isinstance(members, list):
                raise ValueError("GeometryCollection.geometries must be an array")
            for member in members:
                if not isinstance(member, dict):
                    raise ValueError("GeometryCollection member must be an object")
                self._convert(member, label, attributes, points, shapes)
            return

        if coords is None:
            raise ValueError(f"{gtype} geometry has no coordinates")

        if gtype == "Point":
            lat, lon = _position(coords)
            points.append(Point(latitude=lat, longitude=lon, label=label, attributes=attributes))
        elif gtype == "MultiPoint":
            for lat, lon in _path(coords, min_length=1):
                points.append(Point(latitude=lat, longitude=lon, label=label, attributes=attributes))
        elif gtype == "LineString":
            shapes.append(
                Shape(geometry_type="LineString", rings=[_path(coords, min_length=2)], label=label, attributes=attributes)
            )
        elif gtype == "MultiLineString":
            for part in coords:
                shapes.append(
                    Shape(geometry_type="LineString", rings=[_path(part, min_length=2)], label=label, attributes=attributes)
                )
        elif gtype == "Polygon":
            shapes.append(Shape(geometry_type="Polygon", rings=_polygon_rings(coords), label=label, attributes=attributes))
        elif gtype == "MultiPolygon":
            for part in coords:
                shapes.append(Shape(geometry_type="Polygon", rings=_polygon_rings(part), label=label, attributes=attributes))
        else:
            raise ValueError(f"unsupported geometry type: {gtype!r}")

    def build(self) -> GeometryCollection:
        return GeometryCollection(kind=self.kind, points=self.points, shapes=self.shapes)
