"""
Compressed-vector-archive decoder (zipped shapefiles, bare `.shp`).

A zip may hold several shapefile layers at any depth. Every layer is read with
geopandas, reprojected to geographic coordinates when it declares another CRS, and all
point/line/polygon features are merged into one `vector-features` collection. Layer
identity is not kept beyond a `layer` attribute on each feature.

Unreadable archives, archives without a `.shp`, unreadable layers and archives with no
geometry at all yield `DecodeError`; individual empty/invalid geometries are skipped.
"""

from __future__ import annotations

import io
import logging
import tempfile
import threading
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import geopandas as gpd
import pandas as pd
import pyogrio
from shapely.geometry import mapping

from geodash.config.settings import Settings, get_settings
from geodash.domain.models import ErrorKind, LoadError, LoadOk, LoadResult
from geodash.ingestion.features import FeatureCollector

logger = logging.getLogger(__name__)

# GDAL config options are process-wide; archive decodes run on worker threads.
_GDAL_CONFIG_LOCK = threading.Lock()


def _safe_extract(zf: zipfile.ZipFile, target: Path) -> None:
    """Extract all members, refusing entries that would escape `target`."""
    root = target.resolve()
    for member in zf.infolist():
        dest = (root / member.filename).resolve()
        if root != dest and root not in dest.parents:
            raise zipfile.BadZipFile(f"archive member escapes extraction dir: {member.filename}")
    zf.extractall(root)


def _find_layers(root: Path) -> list[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == ".shp")


def _clean(value: Any) -> Any:
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        # list-like values: `pd.isna` is elementwise
        pass
    return value


@contextmanager
def gdal_config(**options: Any) -> Iterator[None]:
    """Temporarily set GDAL config options through pyogrio, restoring previous values.

    Holds a module lock for the whole block so concurrent callers cannot restore
    each other's values.
    """
    with _GDAL_CONFIG_LOCK:
        previous = {k: pyogrio.get_gdal_config_option(k) for k in options}
        pyogrio.set_gdal_config_options(options)
        try:
            yield
        finally:
            pyogrio.set_gdal_config_options(previous)


def _read_layer(path: Path, target_crs: str) -> gpd.GeoDataFrame:
    gdf = gpd.read_file(path, engine="pyogrio")
    if gdf.crs is not None and not gdf.crs.equals(target_crs):
        gdf = gdf.to_crs(target_crs)
    return gdf


def _collect_layer(collector: FeatureCollector, gdf: gpd.GeoDataFrame, layer_name: str) -> None:
    geometry_name = gdf.geometry.name
    records = gdf.drop(columns=[geometry_name]).to_dict("records")
    for record, geom in zip(records, gdf.geometry):
        if geom is None or geom.is_empty:
            collector.skipped += 1
            continue
        feature = {
            "type": "Feature",
            "geometry": mapping(geom),
            "properties": {k: _clean(v) for k, v in record.items()},
        }
        collector.add_feature(feature, extra={"layer": layer_name})


def decode_archive(raw: bytes | str, settings: Settings | None = None) -> LoadResult:
    """Decode a zipped shapefile (or a bare `.shp` payload) into one merged collection."""
    settings = settings or get_settings()
    if isinstance(raw, str):
        return LoadError(ErrorKind.DECODE_ERROR, "Shapefile archives must be read as binary")

    collector = FeatureCollector("vector-features", label_keys=settings.ingestion.label_keys)
    target_crs = settings.ingestion.archive_target_crs

    with tempfile.TemporaryDirectory(prefix="geodash-shp-") as tmp:
        work = Path(tmp)
        buffer = io.BytesIO(raw)
        if zipfile.is_zipfile(buffer):
            try:
                with zipfile.ZipFile(buffer) as zf:
                    _safe_extract(zf, work)
            except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
                logger.warning("Shapefile archive could not be extracted: %s", exc)
                return LoadError(ErrorKind.DECODE_ERROR, f"Error reading shapefile archive: {exc}")
            layers = _find_layers(work)
            if not layers:
                return LoadError(ErrorKind.DECODE_ERROR, "No shapefile (.shp) found inside archive")
        else:
            bare = work / "upload.shp"
            bare.write_bytes(raw)
            layers = [bare]

        for layer in layers:
            try:
                # A bare .shp arrives without its .shx index; let GDAL rebuild it.
                with gdal_config(SHAPE_RESTORE_SHX="YES"):
                    gdf = _read_layer(layer, target_crs)
            except Exception as exc:
                logger.warning("Shapefile layer %s could not be read: %s", layer.name, exc)
                return LoadError(ErrorKind.DECODE_ERROR, f"Error reading shapefile layer {layer.stem}: {exc}")
            _collect_layer(collector, gdf, layer.stem)

    if collector.count == 0:
        return LoadError(ErrorKind.DECODE_ERROR, "Shapefile contains no geometry")
    if collector.skipped:
        logger.info("Shapefile decode skipped %d features", collector.skipped)

    return LoadOk(
        collection=collector.build(),
        skipped=collector.skipped,
        message=f"Shapefile loaded: {len(layers)} layer(s), {collector.count} features",
    )
