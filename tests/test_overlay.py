from geodash.core.geo import BoundingBox
from geodash.domain.models import GeometryCollection, Place, Point, RasterReference, Route
from geodash.overlay.state import LayerKind, OverlayManager, OverlayState


class RecordingSurface:
    def __init__(self):
        self.events: list[tuple] = []

    def draw(self, kind, payload, fit_bounds):
        self.events.append(("draw", kind, fit_bounds))

    def remove(self, kind):
        self.events.append(("remove", kind))


def _pt(lat, lon) -> Point:
    return Point(latitude=lat, longitude=lon)


def _raster(west, south) -> RasterReference:
    box = BoundingBox(west=west, south=south, east=west + 1, north=south + 1)
    return RasterReference(
        data=None,
        transform=(1.0, 0.0, west, 0.0, -1.0, south + 1),
        bounds=box,
        geographic_bounds=box,
        resolution=(1.0, 1.0),
        width=1,
        height=1,
        count=1,
        dtype="uint8",
        crs="EPSG:4326",
    )


def test_polygon_vertices_report_area_from_third_click():
    overlay = OverlayManager()
    overlay.begin_polygon()

    first = overlay.add_polygon_vertex(_pt(0, 0))
    second = overlay.add_polygon_vertex(_pt(0, 1))
    third = overlay.add_polygon_vertex(_pt(1, 1))

    assert (first.vertex_count, first.area_sq_km) == (1, None)
    assert (second.vertex_count, second.area_sq_km) == (2, None)
    assert third.vertex_count == 3
    assert third.area_sq_km > 0


def test_clicks_outside_area_mode_are_ignored():
    overlay = OverlayManager()
    assert overlay.add_polygon_vertex(_pt(0, 0)) is None
    assert overlay.state.polygon == []


def test_begin_polygon_discards_previous_ring():
    surface = RecordingSurface()
    overlay = OverlayManager(surface=surface)
    overlay.begin_polygon()
    overlay.add_polygon_vertex(_pt(0, 0))
    overlay.begin_polygon()

    assert overlay.state.area_mode
    assert overlay.state.polygon == []
    assert surface.events[-1] == ("remove", LayerKind.POLYGON)

    overlay.reset_polygon()
    assert not overlay.state.area_mode


def test_replace_scatter_removes_previous_layer_before_drawing():
    surface = RecordingSurface()
    overlay = OverlayManager(surface=surface)
    a = GeometryCollection(kind="scatter", points=[_pt(1, 1)])
    b = GeometryCollection(kind="scatter", points=[_pt(2, 3)])

    overlay.replace_scatter(a)
    overlay.replace_scatter(b)

    assert overlay.state.vectors is b
    assert [e[0] for e in surface.events] == ["draw", "remove", "draw"]
    fit = surface.events[-1][2]
    assert (fit.south, fit.west) == (2.0, 3.0)


def test_set_raster_replaces_previous_grid():
    surface = RecordingSurface()
    overlay = OverlayManager(surface=surface)
    first, second = _raster(0, 0), _raster(10, 20)

    assert overlay.set_raster(first)
    assert overlay.set_raster(second)

    assert overlay.state.raster is second
    assert surface.events == [
        ("draw", LayerKind.RASTER, first.geographic_bounds),
        ("remove", LayerKind.RASTER),
        ("draw", LayerKind.RASTER, second.geographic_bounds),
    ]


def test_stale_token_is_dropped():
    overlay = OverlayManager()
    old = overlay.issue_token(LayerKind.SEARCH)
    new = overlay.issue_token(LayerKind.SEARCH)

    assert not overlay.set_search_marker(Place(latitude=1, longitude=1, label="old"), token=old)
    assert overlay.set_search_marker(Place(latitude=2, longitude=2, label="new"), token=new)
    assert overlay.state.search_marker.label == "new"


def test_base_point_prefers_tracker_over_search():
    overlay = OverlayManager()
    assert overlay.base_point() is None
    overlay.set_search_marker(Place(latitude=1, longitude=1, label="search"))
    assert overlay.base_point().label == "search"
    overlay.set_tracker(Place(latitude=2, longitude=2, label="me"))
    assert overlay.base_point().label == "me"


def test_clear_all_empties_state_and_is_idempotent():
    surface = RecordingSurface()
    overlay = OverlayManager(surface=surface)
    overlay.replace_scatter(GeometryCollection(kind="scatter", points=[_pt(1, 1)]))
    overlay.set_route(Route(path=[_pt(0, 0), _pt(1, 1)], distance_meters=1500))
    overlay.set_nearby([])
    overlay.begin_polygon()
    overlay.add_polygon_vertex(_pt(0, 0))

    overlay.clear_all()
    removed = {e[1] for e in surface.events if e[0] == "remove"}
    assert removed == {LayerKind.VECTORS, LayerKind.ROUTE, LayerKind.NEARBY, LayerKind.POLYGON}
    assert overlay.state.is_empty()

    count = len(surface.events)
    overlay.clear_all()
    assert len(surface.events) == count
    assert overlay.state == OverlayState()


def test_clear_all_supersedes_in_flight_requests():
    overlay = OverlayManager()
    token = overlay.issue_token(LayerKind.ROUTE)
    overlay.clear_all()
    assert not overlay.set_route(Route(path=[_pt(0, 0)], distance_meters=0), token=token)
    assert overlay.state.route is None
