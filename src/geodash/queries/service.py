from __future__ import annotations

# Query orchestration: combines the external collaborators (geocoder, router, place
# search) with the geometry primitives and commits results to the overlay.
#
# Rules every query follows:
# - Validate input before any network call (blank names raise InvalidQuery).
# - Mutate the overlay only after every awaited call has succeeded, and only if no
#   newer request for the same slot was issued in the meantime.
# - Failures are terminal: typed `QueryError`s, never retried.

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from geodash.config.settings import Settings, get_settings
from geodash.core.geo import BoundingBox, box_around, distance_km
from geodash.domain.errors import InvalidQuery, NoBasePoint, NoRouteFound, PlaceNotFound
from geodash.domain.models import Place, Route
from geodash.overlay.state import LayerKind, OverlayManager

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def geocode(self, query: str) -> Place | None: ...


class Router(Protocol):
    async def route(self, start: Place, end: Place) -> Route | None: ...


class PlaceSearch(Protocol):
    async def search(self, term: str, box: BoundingBox) -> list[Place]: ...


@dataclass(frozen=True)
class DistanceResult:
    start: Place
    end: Place
    distance_km: float
    committed: bool = True


@dataclass(frozen=True)
class RouteResult:
    start: Place
    end: Place
    route: Route
    committed: bool = True

    @property
    def distance_km(self) -> float:
        return self.route.distance_km


@dataclass(frozen=True)
class NearbyResult:
    term: str
    base: Place
    box: BoundingBox
    places: list[Place]
    committed: bool = True

    @property
    def count(self) -> int:
        return len(self.places)


def _require(value: str, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise InvalidQuery(message)
    return value


class QueryService:
    """Distance, routing, search and nearby queries against one `OverlayManager`."""

    def __init__(
        self,
        overlay: OverlayManager,
        *,
        geocoder: Geocoder,
        router: Router,
        places: PlaceSearch,
        settings: Settings | None = None,
    ):
        self._overlay = overlay
        self._geocoder = geocoder
        self._router = router
        self._places = places
        self._settings = settings or get_settings()

    async def _geocode_pair(self, a: str, b: str) -> tuple[Place | None, Place | None]:
        first, second = await asyncio.gather(self._geocoder.geocode(a), self._geocoder.geocode(b))
        return first, second

    async def search_place(self, query: str) -> Place:
        """Geocode `query` and move the search marker there."""
        query = _require(query, "Type a place to search")
        token = self._overlay.issue_token(LayerKind.SEARCH)
        place = await self._geocoder.geocode(query)
        if place is None:
            raise PlaceNotFound("Place not found")
        self._overlay.set_search_marker(place, token=token)
        return place

    def track_location(self, latitude: float, longitude: float) -> Place:
        """Record a device-supplied position as the tracked-location marker."""
        place = Place(latitude=latitude, longitude=longitude, label="You are here")
        self._overlay.set_tracker(place, token=self._overlay.issue_token(LayerKind.TRACKER))
        return place

    async def distance_between(self, name_a: str, name_b: str) -> DistanceResult:
        name_a = _require(name_a, "Enter two places")
        name_b = _require(name_b, "Enter two places")
        token = self._overlay.issue_token(LayerKind.DISTANCE)

        a, b = await self._geocode_pair(name_a, name_b)
        if a is None or b is None:
            raise PlaceNotFound("Could not find one or both places")

        km = distance_km(a, b)
        # Markers are labelled with what the user typed, not the geocoder's name.
        marker_a = a.model_copy(update={"label": name_a})
        marker_b = b.model_copy(update={"label": name_b})
        committed = self._overlay.set_distance_markers(marker_a, marker_b, token=token)
        logger.info("Distance %r -> %r: %.2f km", name_a, name_b, km)
        return DistanceResult(start=a, end=b, distance_km=km, committed=committed)

    async def route_between(self, name_a: str, name_b: str) -> RouteResult:
        name_a = _require(name_a, "Enter route start and end")
        name_b = _require(name_b, "Enter route start and end")
        token = self._overlay.issue_token(LayerKind.ROUTE)

        start, end = await self._geocode_pair(name_a, name_b)
        if start is None or end is None:
            raise PlaceNotFound("Could not geocode start or end")

        route = await self._router.route(start, end)
        if route is None or not route.path:
            raise NoRouteFound("No route found")

        committed = self._overlay.set_route(route, token=token)
        logger.info("Route %r -> %r: %.2f km", name_a, name_b, route.distance_km)
        return RouteResult(start=start, end=end, route=route, committed=committed)

    async def nearby(self, term: str) -> NearbyResult:
        """Search `term` in a box around the base point; zero hits is a valid answer."""
        term = _require(term, "Enter a search term (e.g., cafe)")
        base = self._overlay.base_point()
        if base is None:
            raise NoBasePoint("Track yourself or search a place first")

        box = box_around(base.latitude, base.longitude, self._settings.queries.nearby_half_width_deg)
        token = self._overlay.issue_token(LayerKind.NEARBY)
        places = await self._places.search(term, box)
        committed = self._overlay.set_nearby(places, token=token)
        logger.info("Nearby %r: %d places", term, len(places))
        return NearbyResult(term=term, base=base, box=box, places=places, committed=committed)
