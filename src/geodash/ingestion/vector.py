"""Decode GeoJSON (RFC 7946) text: FeatureCollection, single Feature, or bare geometry."""

from __future__ import annotations

import json
import logging

from geodash.config.settings import Settings, get_settings
from geodash.domain.models import ErrorKind, LoadError, LoadOk, LoadResult
from geodash.ingestion.features import FeatureCollector

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = frozenset(
    {"Point", "MultiPoint", "LineString", "MultiLineString", "Polygon", "MultiPolygon", "GeometryCollection"}
)


def decode_vector(raw: bytes | str, settings: Settings | None = None) -> LoadResult:
    """Decode GeoJSON content into a `vector-features` collection.

    Malformed top-level structure yields `ParseError`; defective individual features are
    skipped and counted. A non-empty feature list with no usable geometry is a
    `ParseError`, an empty FeatureCollection is a success with zero features.
    """
    settings = settings or get_settings()

    try:
        text = raw if isinstance(raw, str) else raw.decode(settings.ingestion.text_encoding)
        data = json.loads(text.removeprefix("\ufeff"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
        logger.warning("GeoJSON parse error: %s", exc)
        return LoadError(ErrorKind.PARSE_ERROR, f"Invalid JSON: {exc}")

    if not isinstance(data, dict):
        return LoadError(ErrorKind.PARSE_ERROR, "GeoJSON root must be an object")

    gtype = data.get("type")
    if gtype == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            return LoadError(ErrorKind.PARSE_ERROR, "FeatureCollection.features must be an array")
    elif gtype == "Feature":
        features = [data]
    elif gtype in GEOMETRY_TYPES:
        features = [{"type": "Feature", "geometry": data, "properties": {}}]
    else:
        return LoadError(ErrorKind.PARSE_ERROR, f"Unrecognized GeoJSON type: {gtype!r}")

    collector = FeatureCollector("vector-features", label_keys=settings.ingestion.label_keys)
    for feature in features:
        collector.add_feature(feature)

    if features and collector.count == 0:
        return LoadError(ErrorKind.PARSE_ERROR, "GeoJSON contains no usable geometry")
    if collector.skipped:
        logger.info("GeoJSON decode skipped %d of %d features", collector.skipped, len(features))

    return LoadOk(collection=collector.build(), skipped=collector.skipped, message="GeoJSON loaded")
