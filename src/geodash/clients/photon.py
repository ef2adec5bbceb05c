"""
Geocoding client (Photon, komoot).

Resolves a free-text place name to its best match. Photon answers with a GeoJSON
FeatureCollection whose coordinates are `[lon, lat]`.

Contract:
- `None` means "place not found" (empty result set).
- Transport failures and unusable payloads raise `TransportError`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from geodash.config.settings import Settings
from geodash.core.geo import lonlat_to_latlon
from geodash.core.http import describe_http_error, get_json
from geodash.domain.errors import TransportError
from geodash.domain.models import Place

logger = logging.getLogger(__name__)


def parse_photon_response(payload: Any, query: str) -> Place | None:
    """Turn a Photon response into the first matching `Place` (or None)."""
    if not isinstance(payload, dict):
        raise ValueError("Photon response is not an object")
    features = payload.get("features") or []
    if not features:
        return None
    first = features[0]
    lat, lon = lonlat_to_latlon(first["geometry"]["coordinates"])
    properties = first.get("properties") or {}
    return Place(latitude=lat, longitude=lon, label=properties.get("name") or query)


class PhotonGeocoder:
    def __init__(self, settings: Settings):
        self._settings = settings

    async def geocode(self, query: str) -> Place | None:
        """Return the best match for `query`, or None when nothing matches."""
        query = query.strip()
        if not query:
            return None
        cfg = self._settings.services.photon
        logger.info("Geocoding %r", query)
        try:
            payload = await get_json(
                cfg.base_url,
                params={"q": query, "limit": cfg.limit},
                timeout_seconds=self._settings.app.http_timeout_seconds,
                headers={"User-Agent": self._settings.app.user_agent},
            )
            return parse_photon_response(payload, query)
        except httpx.HTTPError as exc:
            raise TransportError(f"Geocoding failed: {describe_http_error(exc)}") from exc
        except (ValueError, KeyError, TypeError, IndexError, ValidationError) as exc:
            raise TransportError(f"Unexpected geocoding response: {exc}") from exc
