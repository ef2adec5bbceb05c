import asyncio

import httpx
import pytest

from geodash.clients.nominatim import NominatimPlaceSearch, parse_nominatim_response
from geodash.clients.osrm import OsrmRouter
from geodash.clients.photon import PhotonGeocoder
from geodash.config.settings import get_settings
from geodash.core.geo import box_around
from geodash.domain.errors import TransportError
from geodash.domain.models import Place


def _status_error(url: str, status: int, body: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    response = httpx.Response(status, request=request, json=body or {})
    return httpx.HTTPStatusError(str(status), request=request, response=response)


def test_photon_returns_first_feature_lat_lon(monkeypatch):
    seen = {}

    async def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):  # noqa: ARG001
        seen.update(url=url, params=params)
        return {
            "type": "FeatureCollection",
            "features": [
                {"geometry": {"type": "Point", "coordinates": [121.5654, 25.0330]}, "properties": {"name": "Taipei 101"}},
                {"geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {"name": "other"}},
            ],
        }

    monkeypatch.setattr("geodash.clients.photon.get_json", fake_get_json)
    place = asyncio.run(PhotonGeocoder(get_settings()).geocode("taipei 101"))

    assert place == Place(latitude=25.0330, longitude=121.5654, label="Taipei 101")
    assert seen["params"]["q"] == "taipei 101"
    assert seen["params"]["limit"] == 1


def test_photon_empty_result_is_none(monkeypatch):
    async def fake_get_json(url, **_kwargs):
        return {"type": "FeatureCollection", "features": []}

    monkeypatch.setattr("geodash.clients.photon.get_json", fake_get_json)
    assert asyncio.run(PhotonGeocoder(get_settings()).geocode("nowhere")) is None


def test_photon_transport_failure_is_distinct_from_not_found(monkeypatch):
    async def fake_get_json(url, **_kwargs):
        raise httpx.ConnectError("offline", request=httpx.Request("GET", url))

    monkeypatch.setattr("geodash.clients.photon.get_json", fake_get_json)
    with pytest.raises(TransportError, match="could not connect to photon.komoot.io"):
        asyncio.run(PhotonGeocoder(get_settings()).geocode("taipei"))


def test_osrm_builds_lon_lat_url_and_parses_geometry(monkeypatch):
    seen = {}

    async def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):  # noqa: ARG001
        seen.update(url=url, params=params)
        return {
            "code": "Ok",
            "routes": [{"distance": 2500.0, "geometry": {"type": "LineString", "coordinates": [[121.5, 25.0], [121.6, 25.1]]}}],
        }

    monkeypatch.setattr("geodash.clients.osrm.get_json", fake_get_json)
    start = Place(latitude=25.0, longitude=121.5)
    end = Place(latitude=25.1, longitude=121.6)
    route = asyncio.run(OsrmRouter(get_settings()).route(start, end))

    assert seen["url"].endswith("/route/v1/driving/121.5,25.0;121.6,25.1")
    assert seen["params"] == {"overview": "full", "geometries": "geojson"}
    assert route.distance_km == 2.5
    assert [(p.latitude, p.longitude) for p in route.path] == [(25.0, 121.5), (25.1, 121.6)]


def test_osrm_no_route_code_is_none(monkeypatch):
    async def fake_get_json(url, **_kwargs):
        raise _status_error(url, 400, {"code": "NoRoute", "message": "Impossible route"})

    monkeypatch.setattr("geodash.clients.osrm.get_json", fake_get_json)
    place = Place(latitude=0, longitude=0)
    assert asyncio.run(OsrmRouter(get_settings()).route(place, place)) is None


def test_osrm_server_error_is_transport_error(monkeypatch):
    async def fake_get_json(url, **_kwargs):
        raise _status_error(url, 503)

    monkeypatch.setattr("geodash.clients.osrm.get_json", fake_get_json)
    place = Place(latitude=0, longitude=0)
    with pytest.raises(TransportError):
        asyncio.run(OsrmRouter(get_settings()).route(place, place))


def test_nominatim_sends_bounded_viewbox(monkeypatch):
    seen = {}

    async def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):  # noqa: ARG001
        seen.update(params=params, headers=headers)
        return [
            {"lat": "25.04", "lon": "121.56", "display_name": "Cafe A"},
            {"lat": "oops", "lon": "121.56", "display_name": "broken"},
        ]

    monkeypatch.setattr("geodash.clients.nominatim.get_json", fake_get_json)
    box = box_around(25.0, 121.5, 0.08)
    places = asyncio.run(NominatimPlaceSearch(get_settings()).search("cafe", box))

    assert places == [Place(latitude=25.04, longitude=121.56, label="Cafe A")]
    assert seen["params"]["bounded"] == 1
    assert seen["params"]["viewbox"] == box.as_viewbox()
    assert seen["headers"]["Accept-Language"] == "en"


def test_parse_nominatim_rejects_non_list():
    with pytest.raises(ValueError):
        parse_nominatim_response({"error": "nope"})
