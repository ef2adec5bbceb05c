"""
Place-search client (Nominatim).

Searches a term strictly inside a viewbox (`bounded=1`). Results without usable
coordinates are dropped; an empty list is a normal answer.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from geodash.config.settings import Settings
from geodash.core.geo import BoundingBox
from geodash.core.http import describe_http_error, get_json
from geodash.domain.errors import TransportError
from geodash.domain.models import Place

logger = logging.getLogger(__name__)


def parse_nominatim_response(payload: Any) -> list[Place]:
    if not isinstance(payload, list):
        raise ValueError("Nominatim response is not an array")
    places: list[Place] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            places.append(
                Place(
                    latitude=float(item["lat"]),
                    longitude=float(item["lon"]),
                    label=str(item.get("display_name") or ""),
                )
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            continue
    return places


class NominatimPlaceSearch:
    def __init__(self, settings: Settings):
        self._settings = settings

    async def search(self, term: str, box: BoundingBox) -> list[Place]:
        cfg = self._settings.services.nominatim
        params = {
            "format": "json",
            "q": term,
            "limit": cfg.limit,
            "viewbox": box.as_viewbox(),
            "bounded": 1,
        }
        logger.info("Searching %r within %s", term, params["viewbox"])
        try:
            payload = await get_json(
                cfg.base_url,
                params=params,
                headers={"Accept-Language": cfg.accept_language, "User-Agent": self._settings.app.user_agent},
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
            return parse_nominatim_response(payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Nearby search failed: {describe_http_error(exc)}") from exc
        except ValueError as exc:
            raise TransportError(f"Unexpected place-search response: {exc}") from exc
