"""
Overlay state manager.

`OverlayState` is the one intentional mutable container of the application: at most one
active instance per overlay kind (vector layer, raster, drawn polygon, markers, route,
nearby results). `OverlayManager` is the only writer. Every mutation replaces a whole
slot at once, so a handler resuming after an `await` never observes a half-applied
update.

Stale async results are rejected with per-slot request tokens: `issue_token(slot)`
hands out a monotonically increasing number and a commit carrying an older token than
the latest issued one is dropped (last-issued-request-wins).

Every mutation is mirrored to a `RenderSurface` as `draw(kind, payload, fit_bounds)` or
`remove(kind)`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Any, Protocol

from geodash.core.geo import BoundingBox, bounds_of, polygon_area_sq_km
from geodash.domain.models import GeometryCollection, Place, Point, RasterReference, Route

logger = logging.getLogger(__name__)


class LayerKind(str, Enum):
    VECTORS = "vectors"
    RASTER = "raster"
    POLYGON = "polygon"
    SEARCH = "search"
    TRACKER = "tracker"
    ROUTE = "route"
    DISTANCE = "distance"
    NEARBY = "nearby"


class RenderSurface(Protocol):
    def draw(self, kind: LayerKind, payload: Any, fit_bounds: BoundingBox | None) -> None: ...

    def remove(self, kind: LayerKind) -> None: ...


class NullSurface:
    """Render surface that draws nothing (headless API/CLI use)."""

    def draw(self, kind: LayerKind, payload: Any, fit_bounds: BoundingBox | None) -> None:
        return None

    def remove(self, kind: LayerKind) -> None:
        return None


@dataclass
class OverlayState:
    vectors: GeometryCollection | None = None
    raster: RasterReference | None = None
    area_mode: bool = False
    polygon: list[Point] = field(default_factory=list)
    search_marker: Place | None = None
    tracker_marker: Place | None = None
    route: Route | None = None
    distance_markers: tuple[Place, Place] | None = None
    nearby: list[Place] | None = None

    def reset(self) -> None:
        """Return every slot to empty/absent."""
        self.vectors = None
        self.raster = None
        self.area_mode = False
        self.polygon = []
        self.search_marker = None
        self.tracker_marker = None
        self.route = None
        self.distance_markers = None
        self.nearby = None

    def is_empty(self) -> bool:
        return self == OverlayState()


@dataclass(frozen=True)
class VertexResult:
    """Outcome of one polygon click: vertex count, plus area once there are 3+ vertices."""

    vertex_count: int
    area_sq_km: float | None = None


class OverlayManager:
    """Owns an `OverlayState` and applies load results, clicks and query results to it."""

    def __init__(self, state: OverlayState | None = None, surface: RenderSurface | None = None):
        self.state = state if state is not None else OverlayState()
        self.surface: RenderSurface = surface or NullSurface()
        self._counter = count(1)
        self._latest: dict[LayerKind, int] = {}

    # -- request tokens ---------------------------------------------------------------

    def issue_token(self, slot: LayerKind) -> int:
        """Register a new in-flight request for `slot`; any older request becomes stale."""
        token = next(self._counter)
        self._latest[slot] = token
        return token

    def is_current(self, slot: LayerKind, token: int | None) -> bool:
        if token is None:
            return True
        return self._latest.get(slot) == token

    def _accept(self, slot: LayerKind, token: int | None) -> bool:
        if self.is_current(slot, token):
            return True
        logger.info("Dropping stale %s result (token %s, latest %s)", slot.value, token, self._latest.get(slot))
        return False

    # -- vector / raster layers -------------------------------------------------------

    def replace_scatter(self, collection: GeometryCollection, *, token: int | None = None) -> bool:
        """Swap the point/vector layer for `collection` (never appends across calls)."""
        if not self._accept(LayerKind.VECTORS, token):
            return False
        if self.state.vectors is not None:
            self.surface.remove(LayerKind.VECTORS)
        self.state.vectors = collection
        self.surface.draw(LayerKind.VECTORS, collection, collection.bounds())
        return True

    def clear_scatter(self) -> None:
        if self.state.vectors is not None:
            self.state.vectors = None
            self.surface.remove(LayerKind.VECTORS)

    def set_raster(self, ref: RasterReference, *, token: int | None = None) -> bool:
        if not self._accept(LayerKind.RASTER, token):
            return False
        if self.state.raster is not None:
            self.surface.remove(LayerKind.RASTER)
        self.state.raster = ref
        self.surface.draw(LayerKind.RASTER, ref, ref.geographic_bounds)
        return True

    def clear_raster(self) -> None:
        if self.state.raster is not None:
            self.state.raster = None
            self.surface.remove(LayerKind.RASTER)

    # -- area mode --------------------------------------------------------------------

    def begin_polygon(self) -> None:
        """Enter area mode with an empty vertex list, discarding any drawn polygon."""
        had_polygon = bool(self.state.polygon)
        self.state.area_mode = True
        self.state.polygon = []
        if had_polygon:
            self.surface.remove(LayerKind.POLYGON)

    def add_polygon_vertex(self, point: Point) -> VertexResult | None:
        """Append a clicked vertex; returns None (click ignored) outside area mode."""
        if not self.state.area_mode:
            return None
        ring = [*self.state.polygon, point]
        self.state.polygon = ring
        self.surface.draw(LayerKind.POLYGON, list(ring), None)
        if len(ring) < 3:
            return VertexResult(vertex_count=len(ring))
        return VertexResult(vertex_count=len(ring), area_sq_km=polygon_area_sq_km(ring))

    def reset_polygon(self) -> None:
        had_polygon = bool(self.state.polygon)
        self.state.area_mode = False
        self.state.polygon = []
        if had_polygon:
            self.surface.remove(LayerKind.POLYGON)

    # -- markers, routes, nearby ------------------------------------------------------

    def _replace(self, slot: LayerKind, attr: str, value: Any, fit: BoundingBox | None, token: int | None) -> bool:
        if not self._accept(slot, token):
            return False
        if getattr(self.state, attr) is not None:
            self.surface.remove(slot)
        setattr(self.state, attr, value)
        self.surface.draw(slot, value, fit)
        return True

    def set_search_marker(self, place: Place, *, token: int | None = None) -> bool:
        fit = bounds_of([(place.latitude, place.longitude)])
        return self._replace(LayerKind.SEARCH, "search_marker", place, fit, token)

    def set_tracker(self, place: Place, *, token: int | None = None) -> bool:
        fit = bounds_of([(place.latitude, place.longitude)])
        return self._replace(LayerKind.TRACKER, "tracker_marker", place, fit, token)

    def set_route(self, route: Route, *, token: int | None = None) -> bool:
        return self._replace(LayerKind.ROUTE, "route", route, route.bounds(), token)

    def set_distance_markers(self, a: Place, b: Place, *, token: int | None = None) -> bool:
        fit = bounds_of([(a.latitude, a.longitude), (b.latitude, b.longitude)])
        return self._replace(LayerKind.DISTANCE, "distance_markers", (a, b), fit, token)

    def set_nearby(self, places: list[Place], *, token: int | None = None) -> bool:
        fit = bounds_of((p.latitude, p.longitude) for p in places)
        return self._replace(LayerKind.NEARBY, "nearby", list(places), fit, token)

    def base_point(self) -> Place | None:
        """Origin for nearby searches: tracked location first, then the last search hit."""
        return self.state.tracker_marker or self.state.search_marker

    # -- global -----------------------------------------------------------------------

    def clear_all(self) -> None:
        """Empty every slot; calling it on an empty state is a no-op.

        Requests still in flight are superseded, so nothing issued before the clear can
        repopulate the map afterwards.
        """
        for slot in list(self._latest):
            self._latest[slot] = next(self._counter)
        present = {
            LayerKind.VECTORS: self.state.vectors is not None,
            LayerKind.RASTER: self.state.raster is not None,
            LayerKind.POLYGON: bool(self.state.polygon),
            LayerKind.SEARCH: self.state.search_marker is not None,
            LayerKind.TRACKER: self.state.tracker_marker is not None,
            LayerKind.ROUTE: self.state.route is not None,
            LayerKind.DISTANCE: self.state.distance_markers is not None,
            LayerKind.NEARBY: self.state.nearby is not None,
        }
        self.state.reset()
        for kind, was_present in present.items():
            if was_present:
                self.surface.remove(kind)
