"""
API routes.

Endpoints:
- POST   `/api/layers`: upload a CSV / GeoJSON / zipped shapefile / GeoTIFF.
- DELETE `/api/layers/vectors`, `/api/layers/raster`: per-kind clears.
- GET    `/api/overlay`: current overlay snapshot (what the map should show).
- POST   `/api/area/start`, `/api/area/vertex`, `/api/area/reset`: polygon area mode.
- POST   `/api/search`, `/api/track`: set the search / tracked-location markers.
- POST   `/api/distance`, `/api/route`, `/api/nearby`: spatial queries.
- POST   `/api/clear`: clear everything.

Failures are reported as `{"detail": {"code": <ErrorKind>, "message": ...}}`. Upload errors are
mapped here; `QueryError`s raised by the query endpoints are mapped by `geodash.api.app`.
"""

from __future__ import annotations

from dataclasses import asdict
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from geodash.clients.nominatim import NominatimPlaceSearch
from geodash.clients.osrm import OsrmRouter
from geodash.clients.photon import PhotonGeocoder
from geodash.config.settings import get_settings
from geodash.core.geo import BoundingBox
from geodash.domain.models import ErrorKind, LoadError, LoadOk, LoadRaster, Place, Point, RasterReference
from geodash.ingestion.pipeline import IngestionPipeline
from geodash.overlay.state import OverlayManager
from geodash.queries.service import QueryService

router = APIRouter()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNSUPPORTED_FORMAT: 415,
    ErrorKind.PARSE_ERROR: 422,
    ErrorKind.DECODE_ERROR: 422,
    ErrorKind.PLACE_NOT_FOUND: 404,
    ErrorKind.NO_ROUTE_FOUND: 404,
    ErrorKind.NO_BASE_POINT: 409,
    ErrorKind.TRANSPORT_ERROR: 502,
}


class PairQuery(BaseModel):
    start: str
    end: str


class SearchQuery(BaseModel):
    query: str


class NearbyQuery(BaseModel):
    term: str


class Coordinate(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


@lru_cache
def _overlay() -> OverlayManager:
    return OverlayManager()


@lru_cache
def _pipeline() -> IngestionPipeline:
    return IngestionPipeline(_overlay(), get_settings())


@lru_cache
def _queries() -> QueryService:
    settings = get_settings()
    return QueryService(
        _overlay(),
        geocoder=PhotonGeocoder(settings),
        router=OsrmRouter(settings),
        places=NominatimPlaceSearch(settings),
        settings=settings,
    )


def _error(kind: ErrorKind, message: str) -> HTTPException:
    return HTTPException(status_code=STATUS_BY_KIND.get(kind, 400), detail={"code": kind.value, "message": message})


def _bbox(box: BoundingBox | None) -> dict[str, float] | None:
    return asdict(box) if box is not None else None


def _place(place: Place) -> dict[str, Any]:
    return place.model_dump(mode="json")


def _raster_summary(ref: RasterReference) -> dict[str, Any]:
    return {
        "width": ref.width,
        "height": ref.height,
        "count": ref.count,
        "dtype": ref.dtype,
        "crs": ref.crs,
        "nodata": ref.nodata,
        "resolution": list(ref.resolution),
        "transform": list(ref.transform),
        "bounds": _bbox(ref.bounds),
        "geographic_bounds": _bbox(ref.geographic_bounds),
    }


def _snapshot(manager: OverlayManager) -> dict[str, Any]:
    state = manager.state
    vectors = state.vectors
    return {
        "vectors": vectors.model_dump(mode="json") if vectors is not None else None,
        "vectors_bounds": _bbox(vectors.bounds()) if vectors is not None else None,
        "raster": _raster_summary(state.raster) if state.raster is not None else None,
        "area_mode": state.area_mode,
        "polygon": [p.model_dump(mode="json") for p in state.polygon],
        "search_marker": _place(state.search_marker) if state.search_marker else None,
        "tracker_marker": _place(state.tracker_marker) if state.tracker_marker else None,
        "route": state.route.model_dump(mode="json") if state.route else None,
        "distance_markers": [_place(p) for p in state.distance_markers] if state.distance_markers else None,
        "nearby": [_place(p) for p in state.nearby] if state.nearby is not None else None,
    }


@router.post("/api/layers")
async def upload_layer(file: UploadFile = File(...)) -> dict:
    """Decode an uploaded file and replace the matching overlay layer."""
    raw = await file.read()
    outcome = await _pipeline().ingest(file.filename or "", raw)
    result = outcome.result
    if isinstance(result, LoadError):
        raise _error(result.kind, result.message)

    payload: dict[str, Any] = {"filename": outcome.filename, "committed": outcome.committed}
    if isinstance(result, LoadOk):
        collection = result.collection
        payload.update(
            {
                "kind": collection.kind,
                "points": len(collection.points),
                "shapes": len(collection.shapes),
                "skipped": result.skipped,
                "bounds": _bbox(collection.bounds()),
                "message": result.message,
            }
        )
    elif isinstance(result, LoadRaster):
        payload.update({"kind": "raster", "raster": _raster_summary(result.raster), "message": result.message})
    return payload


@router.delete("/api/layers/vectors")
def clear_vectors() -> dict:
    _overlay().clear_scatter()
    return {"cleared": "vectors"}


@router.delete("/api/layers/raster")
def clear_raster() -> dict:
    _overlay().clear_raster()
    return {"cleared": "raster"}


@router.get("/api/overlay")
def get_overlay() -> dict:
    return _snapshot(_overlay())


@router.post("/api/area/start")
def area_start() -> dict:
    _overlay().begin_polygon()
    return {"area_mode": True, "message": "Area mode: click on map to add polygon points"}


@router.post("/api/area/vertex")
def area_vertex(coord: Coordinate) -> dict:
    result = _overlay().add_polygon_vertex(Point(latitude=coord.lat, longitude=coord.lon))
    if result is None:
        raise HTTPException(
            status_code=409, detail={"code": "AreaModeInactive", "message": "Start area mode before adding points"}
        )
    if result.area_sq_km is None:
        message = f"Points: {result.vertex_count} (need >=3)"
    else:
        message = f"Polygon area: {result.area_sq_km:.3f} sq km"
    return {"vertex_count": result.vertex_count, "area_sq_km": result.area_sq_km, "message": message}


@router.post("/api/area/reset")
def area_reset() -> dict:
    _overlay().reset_polygon()
    return {"area_mode": False, "message": "Area cleared"}


@router.post("/api/search")
async def search(body: SearchQuery) -> dict:
    place = await _queries().search_place(body.query)
    return {"place": _place(place), "message": f"Found: {place.label}"}


@router.post("/api/track")
def track(coord: Coordinate) -> dict:
    place = _queries().track_location(coord.lat, coord.lon)
    return {"place": _place(place), "message": "Tracked your location"}


@router.post("/api/distance")
async def distance(body: PairQuery) -> dict:
    result = await _queries().distance_between(body.start, body.end)
    return {
        "start": _place(result.start),
        "end": _place(result.end),
        "distance_km": result.distance_km,
        "committed": result.committed,
        "message": f"Distance: {result.distance_km:.2f} km",
    }


@router.post("/api/route")
async def route(body: PairQuery) -> dict:
    result = await _queries().route_between(body.start, body.end)
    return {
        "start": _place(result.start),
        "end": _place(result.end),
        "route": result.route.model_dump(mode="json"),
        "distance_km": result.distance_km,
        "committed": result.committed,
        "message": f"Route: {result.distance_km:.2f} km",
    }


@router.post("/api/nearby")
async def nearby(body: NearbyQuery) -> dict:
    result = await _queries().nearby(body.term)
    return {
        "base": _place(result.base),
        "box": _bbox(result.box),
        "places": [_place(p) for p in result.places],
        "count": result.count,
        "committed": result.committed,
        "message": f"{result.count} places found",
    }


@router.post("/api/clear")
def clear_all() -> dict:
    _overlay().clear_all()
    return {"message": "Cleared map"}
