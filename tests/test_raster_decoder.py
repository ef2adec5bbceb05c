import numpy as np
import pytest
from rasterio.io import MemoryFile
from rasterio.transform import from_origin

from geodash.domain.models import ErrorKind, LoadError, LoadRaster
from geodash.ingestion.raster import decode_raster


def _geotiff(*, crs: str | None, origin=(120.0, 26.0), pixel=0.5, count: int = 1) -> bytes:
    data = np.arange(count * 4 * 6, dtype="uint8").reshape(count, 4, 6)
    profile = {
        "driver": "GTiff",
        "width": 6,
        "height": 4,
        "count": count,
        "dtype": "uint8",
        "transform": from_origin(origin[0], origin[1], pixel, pixel),
    }
    if crs:
        profile["crs"] = crs
    with MemoryFile() as memfile:
        with memfile.open(**profile) as ds:
            ds.write(data)
        memfile.seek(0)
        return memfile.read()


def test_geographic_geotiff():
    result = decode_raster(_geotiff(crs="EPSG:4326", count=3))

    assert isinstance(result, LoadRaster)
    ref = result.raster
    assert (ref.width, ref.height, ref.count) == (6, 4, 3)
    assert ref.data.shape == (3, 4, 6)
    assert ref.resolution == (0.5, 0.5)
    assert ref.crs == "EPSG:4326"
    assert ref.bounds.west == pytest.approx(120.0)
    assert ref.bounds.north == pytest.approx(26.0)
    assert ref.bounds.east == pytest.approx(123.0)
    assert ref.bounds.south == pytest.approx(24.0)
    assert ref.geographic_bounds == ref.bounds
    assert "6x4, 3 band(s)" in result.message


def test_projected_geotiff_gets_lonlat_fit_bounds():
    result = decode_raster(_geotiff(crs="EPSG:3857", origin=(0.0, 111325.14), pixel=18554.19))

    assert isinstance(result, LoadRaster)
    geo = result.raster.geographic_bounds
    assert geo is not None
    assert geo.west == pytest.approx(0.0, abs=1e-6)
    assert geo.east == pytest.approx(1.0, abs=1e-3)
    assert geo.north == pytest.approx(1.0, abs=1e-3)


def test_garbage_is_decode_error():
    result = decode_raster(b"II*\x00 this is not really a tiff")
    assert isinstance(result, LoadError)
    assert result.kind is ErrorKind.DECODE_ERROR


def test_empty_payload_is_decode_error():
    result = decode_raster(b"")
    assert isinstance(result, LoadError)
    assert result.kind is ErrorKind.DECODE_ERROR
