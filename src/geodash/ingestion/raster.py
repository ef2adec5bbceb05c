"""
Raster-grid decoder (GeoTIFF).

The payload is opened in memory with rasterio; pixel values are read once and handed on
untouched inside a `RasterReference`. Besides native bounds the reference carries
lon/lat bounds so the renderer can fit the view without reprojecting any pixels.
"""

from __future__ import annotations

import logging

from rasterio.io import MemoryFile
from rasterio.warp import transform_bounds

from geodash.config.settings import Settings
from geodash.core.geo import BoundingBox
from geodash.domain.models import ErrorKind, LoadError, LoadRaster, LoadResult, RasterReference

logger = logging.getLogger(__name__)

SUPPORTED_DRIVERS = frozenset({"GTiff", "COG"})


def _geographic_bounds(bounds: BoundingBox, crs) -> BoundingBox | None:
    if crs is None:
        # No CRS: only trust the bounds if they already look like lon/lat.
        if -180 <= bounds.west <= bounds.east <= 180 and -90 <= bounds.south <= bounds.north <= 90:
            return bounds
        return None
    if crs.is_geographic:
        return bounds
    west, south, east, north = transform_bounds(crs, "EPSG:4326", bounds.west, bounds.south, bounds.east, bounds.north)
    return BoundingBox(west=west, south=south, east=east, north=north)


def decode_raster(raw: bytes | str, settings: Settings | None = None) -> LoadResult:
    """Decode a GeoTIFF payload into a `RasterReference`."""
    if isinstance(raw, str):
        return LoadError(ErrorKind.DECODE_ERROR, "GeoTIFF payloads must be read as binary")
    if not raw:
        return LoadError(ErrorKind.DECODE_ERROR, "Error loading GeoTIFF: empty file")

    try:
        with MemoryFile(raw) as memfile, memfile.open() as ds:
            if ds.driver not in SUPPORTED_DRIVERS:
                return LoadError(ErrorKind.DECODE_ERROR, f"Not a GeoTIFF (detected driver {ds.driver})")
            native = BoundingBox(west=ds.bounds.left, south=ds.bounds.bottom, east=ds.bounds.right, north=ds.bounds.top)
            ref = RasterReference(
                data=ds.read(),
                transform=tuple(ds.transform)[:6],
                bounds=native,
                geographic_bounds=_geographic_bounds(native, ds.crs),
                resolution=(float(ds.res[0]), float(ds.res[1])),
                width=int(ds.width),
                height=int(ds.height),
                count=int(ds.count),
                dtype=str(ds.dtypes[0]),
                crs=ds.crs.to_string() if ds.crs else None,
                nodata=ds.nodata,
            )
    except Exception as exc:
        # GDAL surfaces corrupt headers and unsupported compression through several
        # unrelated exception types (RasterioIOError, CPLE_*); all of them end here.
        logger.warning("GeoTIFF decode failed: %s", exc)
        return LoadError(ErrorKind.DECODE_ERROR, f"Error loading GeoTIFF: {exc}")

    return LoadRaster(raster=ref, message=f"GeoTIFF raster loaded: {ref.width}x{ref.height}, {ref.count} band(s)")
