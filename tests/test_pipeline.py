import asyncio
import threading

import pytest

from geodash.domain.models import ErrorKind, GeometryCollection, LoadError, LoadOk, Point
from geodash.ingestion import pipeline
from geodash.ingestion.pipeline import IngestionPipeline, extension_of, ingest
from geodash.overlay.state import OverlayManager


def _collection(*coords) -> GeometryCollection:
    return GeometryCollection(kind="scatter", points=[Point(latitude=a, longitude=b) for a, b in coords])


def test_unknown_extension_never_reaches_a_decoder(monkeypatch):
    calls = []
    for ext in list(pipeline.DECODERS):
        monkeypatch.setitem(pipeline.DECODERS, ext, lambda raw, settings=None: calls.append(raw))

    result = ingest("data.xyz", b"lat,lon\n1,2\n")

    assert isinstance(result, LoadError)
    assert result.kind is ErrorKind.UNSUPPORTED_FORMAT
    assert calls == []


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("points.CSV", "csv"),
        ("a.b.GeoJSON", "geojson"),
        ("C:\\maps\\roads.Zip", "zip"),
        ("dem.TIFF", "tiff"),
        ("README", ""),
    ],
)
def test_extension_of_is_case_insensitive(filename, expected):
    assert extension_of(filename) == expected


def test_uppercase_extension_dispatches_to_table_decoder():
    result = ingest("STATIONS.CSV", b"lat,lon,name\n25,121,A\n")
    assert isinstance(result, LoadOk)
    assert result.collection.points[0].label == "A"


def test_decoder_exception_becomes_error_value(monkeypatch):
    def boom(raw, settings=None):
        raise RuntimeError("bug")

    monkeypatch.setitem(pipeline.DECODERS, "geojson", boom)
    result = ingest("x.geojson", b"{}")
    assert isinstance(result, LoadError)
    assert result.kind is ErrorKind.PARSE_ERROR


def test_failed_upload_leaves_previous_layer_untouched():
    overlay = OverlayManager()
    loader = IngestionPipeline(overlay)

    first = asyncio.run(loader.ingest("ok.csv", b"lat,lon\n1,2\n"))
    assert first.committed
    before = overlay.state.vectors

    second = asyncio.run(loader.ingest("broken.geojson", b"{not json"))
    assert isinstance(second.result, LoadError)
    assert second.result.kind is ErrorKind.PARSE_ERROR
    assert not second.committed
    assert overlay.state.vectors is before


def test_successive_uploads_replace_instead_of_appending():
    overlay = OverlayManager()
    loader = IngestionPipeline(overlay)

    asyncio.run(loader.ingest("a.csv", b"lat,lon\n1,1\n2,2\n"))
    asyncio.run(loader.ingest("b.csv", b"lat,lon\n3,3\n"))

    assert [p.latitude for p in overlay.state.vectors.points] == [3.0]


def test_slow_earlier_upload_cannot_overwrite_later_one(monkeypatch):
    overlay = OverlayManager()
    loader = IngestionPipeline(overlay)
    release_slow = threading.Event()

    def fake_decode(raw, settings=None):
        if raw == b"slow":
            release_slow.wait(timeout=5)
            return LoadOk(_collection((1.0, 1.0)))
        return LoadOk(_collection((2.0, 2.0)))

    monkeypatch.setitem(pipeline.DECODERS, "csv", fake_decode)

    async def scenario():
        slow = asyncio.create_task(loader.ingest("slow.csv", b"slow"))
        await asyncio.sleep(0)
        fast = await loader.ingest("fast.csv", b"fast")
        release_slow.set()
        return await slow, fast

    slow, fast = asyncio.run(scenario())

    assert fast.committed
    assert not slow.committed
    assert overlay.state.vectors.points[0].latitude == 2.0


def test_raster_and_vector_slots_do_not_supersede_each_other():
    overlay = OverlayManager()
    vector_token = overlay.issue_token(pipeline.slot_for("csv"))
    overlay.issue_token(pipeline.slot_for("tif"))
    assert overlay.replace_scatter(_collection((0.0, 0.0)), token=vector_token)
