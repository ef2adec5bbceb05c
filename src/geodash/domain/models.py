"""
Domain models.

These types represent the stable "contract" between layers:
- decoder output (`Point`, `Shape`, `GeometryCollection`, `RasterReference`)
- the ingestion result union (`LoadOk` | `LoadRaster` | `LoadError`)
- service-client results (`Place`, `Route`)

Geometry values are Pydantic models so out-of-range coordinates are rejected at
construction time; decoders rely on that to skip bad rows/features. Raster handles and
load results are plain frozen dataclasses because they wrap numpy arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from geodash.core.geo import BoundingBox, bounds_of


class Point(BaseModel):
    """A labelled location with string attributes (immutable)."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    label: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)

    def as_latlon(self) -> tuple[float, float]:
        return self.latitude, self.longitude


class Shape(BaseModel):
    """A line or polygon feature; `rings` hold `(lat, lon)` pairs.

    For polygons the first ring is the exterior and any further rings are holes.
    A line has exactly one ring (its path).
    """

    model_config = ConfigDict(frozen=True)

    geometry_type: Literal["LineString", "Polygon"]
    rings: list[list[tuple[float, float]]]
    label: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)


CollectionKind = Literal["scatter", "vector-features"]


class GeometryCollection(BaseModel):
    """Common decoded form for every non-raster input."""

    kind: CollectionKind
    points: list[Point] = Field(default_factory=list)
    shapes: list[Shape] = Field(default_factory=list)

    @property
    def feature_count(self) -> int:
        return len(self.points) + len(self.shapes)

    def bounds(self) -> BoundingBox | None:
        """Fit-view bounds over points and shape vertices (None when empty)."""
        pairs = [p.as_latlon() for p in self.points]
        for shape in self.shapes:
            for ring in shape.rings:
                pairs.extend(ring)
        return bounds_of(pairs)


class Place(BaseModel):
    """A resolved location from geocoding, place search or device tracking."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    label: str = ""


class Route(BaseModel):
    """A routed path between two places."""

    path: list[Point]
    distance_meters: float = Field(..., ge=0)

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000

    def bounds(self) -> BoundingBox | None:
        return bounds_of(p.as_latlon() for p in self.path)


@dataclass(frozen=True)
class RasterReference:
    """Opaque handle to a decoded grid plus what the renderer needs to place it.

    Attributes:
        data: Band array shaped `(count, height, width)`; never interpreted here.
        transform: Affine geotransform coefficients `(a, b, c, d, e, f)`.
        bounds: Native-CRS bounds.
        geographic_bounds: Lon/lat bounds for the fit-view hint (None without a CRS).
        resolution: Pixel size `(x, y)` in CRS units.
        crs: CRS as a string (e.g. "EPSG:4326"), or None when the file has none.
    """

    data: Any
    transform: tuple[float, ...]
    bounds: BoundingBox
    geographic_bounds: BoundingBox | None
    resolution: tuple[float, float]
    width: int
    height: int
    count: int
    dtype: str
    crs: str | None = None
    nodata: float | None = None


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    PARSE_ERROR = "ParseError"
    DECODE_ERROR = "DecodeError"
    NO_ROUTE_FOUND = "NoRouteFound"
    NO_BASE_POINT = "NoBasePoint"
    PLACE_NOT_FOUND = "PlaceNotFound"
    TRANSPORT_ERROR = "TransportError"


@dataclass(frozen=True)
class LoadOk:
    collection: GeometryCollection
    skipped: int = 0
    message: str = ""


@dataclass(frozen=True)
class LoadRaster:
    raster: RasterReference
    message: str = ""


@dataclass(frozen=True)
class LoadError:
    kind: ErrorKind
    message: str


LoadResult = Union[LoadOk, LoadRaster, LoadError]
