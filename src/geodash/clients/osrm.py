"""
Routing client (OSRM).

Requests a single driving route with full GeoJSON overview geometry:
`{base}/route/v1/{profile}/{lon},{lat};{lon},{lat}?overview=full&geometries=geojson`.

`None` means OSRM found no route (empty `routes`, or a `NoRoute`/`NoSegment` code).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from geodash.config.settings import Settings
from geodash.core.geo import latlon_to_lonlat, lonlat_to_latlon
from geodash.core.http import describe_http_error, get_json
from geodash.domain.errors import TransportError
from geodash.domain.models import Place, Point, Route

logger = logging.getLogger(__name__)

NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment"})


def parse_osrm_response(payload: Any) -> Route | None:
    if not isinstance(payload, dict):
        raise ValueError("OSRM response is not an object")
    routes = payload.get("routes") or []
    if not routes:
        return None
    best = routes[0]
    path = []
    for position in best["geometry"]["coordinates"]:
        lat, lon = lonlat_to_latlon(position)
        path.append(Point(latitude=lat, longitude=lon))
    if not path:
        return None
    return Route(path=path, distance_meters=float(best.get("distance") or 0.0))


def _no_route_status(exc: httpx.HTTPStatusError) -> bool:
    try:
        body = exc.response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("code") in NO_ROUTE_CODES


class OsrmRouter:
    def __init__(self, settings: Settings):
        self._settings = settings

    async def route(self, start: Place, end: Place) -> Route | None:
        cfg = self._settings.services.osrm
        coords = ";".join(
            "{},{}".format(*latlon_to_lonlat((place.latitude, place.longitude))) for place in (start, end)
        )
        url = f"{cfg.base_url.rstrip('/')}/route/v1/{cfg.profile}/{coords}"
        logger.info("Requesting route %s", coords)
        try:
            payload = await get_json(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout_seconds=self._settings.app.http_timeout_seconds,
                headers={"User-Agent": self._settings.app.user_agent},
            )
            return parse_osrm_response(payload)
        except httpx.HTTPStatusError as exc:
            if _no_route_status(exc):
                return None
            raise TransportError(f"Routing failed: {describe_http_error(exc)}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Routing failed: {describe_http_error(exc)}") from exc
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise TransportError(f"Unexpected routing response: {exc}") from exc
