import json

import pytest
from starlette.testclient import TestClient

import geodash.api.routes as routes
from geodash.api.app import app
from geodash.config.settings import get_settings
from geodash.domain.models import Place
from geodash.ingestion.pipeline import IngestionPipeline
from geodash.overlay.state import OverlayManager
from geodash.queries.service import QueryService


class _StubGeocoder:
    async def geocode(self, query: str):
        return {"taipei": Place(latitude=25.033, longitude=121.5654, label="Taipei 101")}.get(query)


class _StubRouter:
    async def route(self, start, end):
        return None


class _StubPlaces:
    async def search(self, term, box):
        return [Place(latitude=25.04, longitude=121.56, label=f"{term} A")]


@pytest.fixture
def client(monkeypatch):
    # Fresh overlay per test and offline collaborators.
    overlay = OverlayManager()
    settings = get_settings()
    queries = QueryService(
        overlay, geocoder=_StubGeocoder(), router=_StubRouter(), places=_StubPlaces(), settings=settings
    )
    monkeypatch.setattr(routes, "_overlay", lambda: overlay)
    monkeypatch.setattr(routes, "_pipeline", lambda: IngestionPipeline(overlay, settings))
    monkeypatch.setattr(routes, "_queries", lambda: queries)
    with TestClient(app) as c:
        yield c


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_upload_csv_then_overlay_snapshot(client):
    resp = client.post("/api/layers", files={"file": ("points.CSV", b"lat,lon,name\n25,121,A\nbad,1,B\n", "text/csv")})
    assert resp.status_code == 200
    data = resp.json()
    assert data["kind"] == "scatter"
    assert data["points"] == 1
    assert data["skipped"] == 1
    assert data["committed"] is True

    snapshot = client.get("/api/overlay").json()
    assert snapshot["vectors"]["points"][0]["label"] == "A"
    assert snapshot["vectors_bounds"]["north"] == 25.0


def test_upload_unsupported_extension(client):
    resp = client.post("/api/layers", files={"file": ("notes.xyz", b"hello", "application/octet-stream")})
    assert resp.status_code == 415
    assert resp.json()["detail"]["code"] == "UnsupportedFormat"


def test_bad_geojson_keeps_previous_layer(client):
    client.post("/api/layers", files={"file": ("a.csv", b"lat,lon\n1,2\n", "text/csv")})
    resp = client.post("/api/layers", files={"file": ("b.geojson", b"{nope", "application/geo+json")})
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "ParseError"
    assert len(client.get("/api/overlay").json()["vectors"]["points"]) == 1


def test_upload_geojson(client):
    body = json.dumps({"type": "Point", "coordinates": [121.5, 25.0]}).encode("utf-8")
    resp = client.post("/api/layers", files={"file": ("one.json", body, "application/json")})
    assert resp.status_code == 200
    assert resp.json()["kind"] == "vector-features"


def test_area_flow(client):
    resp = client.post("/api/area/vertex", json={"lat": 0, "lon": 0})
    assert resp.status_code == 409

    client.post("/api/area/start")
    client.post("/api/area/vertex", json={"lat": 0, "lon": 0})
    second = client.post("/api/area/vertex", json={"lat": 0, "lon": 1}).json()
    assert second["vertex_count"] == 2
    assert second["area_sq_km"] is None
    third = client.post("/api/area/vertex", json={"lat": 1, "lon": 1}).json()
    assert third["area_sq_km"] > 0
    assert third["message"].startswith("Polygon area:")

    client.post("/api/area/reset")
    assert client.get("/api/overlay").json()["area_mode"] is False


def test_nearby_requires_base_point(client):
    resp = client.post("/api/nearby", json={"term": "cafe"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "NoBasePoint"

    client.post("/api/search", json={"query": "taipei"})
    resp = client.post("/api/nearby", json={"term": "cafe"})
    assert resp.status_code == 200
    assert resp.json()["count"] == 1


def test_search_and_route_errors(client):
    resp = client.post("/api/search", json={"query": "atlantis"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "PlaceNotFound"

    resp = client.post("/api/route", json={"start": "taipei", "end": "taipei"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NoRouteFound"

    resp = client.post("/api/distance", json={"start": " ", "end": "taipei"})
    assert resp.status_code == 400


def test_clear_all(client):
    client.post("/api/track", json={"lat": 10, "lon": 20})
    client.post("/api/layers", files={"file": ("a.csv", b"lat,lon\n1,2\n", "text/csv")})
    assert client.post("/api/clear").status_code == 200
    snapshot = client.get("/api/overlay").json()
    assert snapshot["vectors"] is None
    assert snapshot["tracker_marker"] is None
