"""
Delimited-table decoder (CSV with latitude/longitude columns).

Column detection is a deliberately loose heuristic: per row, the latitude column is the
first header whose lower-cased name *contains* "lat" and the longitude column the first
containing "lon" (falling back to "latitude"/"longitude"). Headers such as "Plateau" or
"Salon" therefore match too; callers that need stricter detection should rename columns.

Rows are skipped (and counted) when no coordinate columns exist, when a value does not
parse as a finite number, or when coordinates fall outside the valid lat/lon ranges.
Zero valid rows is still a success: the caller checks `collection.feature_count`.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re

from pydantic import ValidationError

from geodash.config.settings import Settings, get_settings
from geodash.domain.models import ErrorKind, GeometryCollection, LoadError, LoadOk, LoadResult, Point

logger = logging.getLogger(__name__)

# Leading-number prefix, the same acceptance rule as JavaScript's parseFloat.
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_leading_float(value: str | None) -> float | None:
    """Parse the numeric prefix of `value`; None when absent or not finite."""
    if value is None:
        return None
    match = _LEADING_NUMBER.match(value)
    if not match:
        return None
    number = float(match.group(1))
    return number if math.isfinite(number) else None


def find_coordinate_keys(
    keys: list[str], *, latitude_keys: list[str], longitude_keys: list[str]
) -> tuple[str | None, str | None]:
    """Locate (lat_key, lon_key) by case-insensitive substring match, in header order."""
    lat_key: str | None = None
    lon_key: str | None = None
    for lat_needle, lon_needle in zip(latitude_keys, longitude_keys):
        lat_key = next((k for k in keys if lat_needle in k.lower()), None)
        lon_key = next((k for k in keys if lon_needle in k.lower()), None)
        if lat_key and lon_key:
            break
    return lat_key, lon_key


def _to_text(raw: bytes | str, encoding: str) -> str:
    text = raw if isinstance(raw, str) else raw.decode(encoding)
    return text.removeprefix("\ufeff")


def decode_table(raw: bytes | str, settings: Settings | None = None) -> LoadResult:
    """Decode CSV content into a `scatter` collection."""
    settings = settings or get_settings()
    cfg = settings.ingestion

    try:
        text = _to_text(raw, cfg.text_encoding)
        rows = list(csv.DictReader(io.StringIO(text, newline="")))
    except (UnicodeDecodeError, csv.Error) as exc:
        logger.warning("CSV parse error: %s", exc)
        return LoadError(ErrorKind.PARSE_ERROR, f"CSV parse error: {exc}")

    label_keys = {k.lower() for k in cfg.label_keys}
    points: list[Point] = []
    skipped = 0
    for row in rows:
        # Overflow cells land under the `None` key; they carry no header to attribute to.
        keys = [k for k in row if k is not None]
        lat_key, lon_key = find_coordinate_keys(
            keys, latitude_keys=cfg.latitude_keys, longitude_keys=cfg.longitude_keys
        )
        if not lat_key or not lon_key:
            skipped += 1
            continue

        lat = parse_leading_float(row.get(lat_key))
        lon = parse_leading_float(row.get(lon_key))
        if lat is None or lon is None:
            skipped += 1
            continue

        attributes = {
            k: "" if row.get(k) is None else str(row[k]) for k in keys if k not in (lat_key, lon_key)
        }
        label = next((v for k, v in attributes.items() if k.strip().lower() in label_keys and v), None)
        try:
            points.append(Point(latitude=lat, longitude=lon, label=label, attributes=attributes))
        except ValidationError:
            skipped += 1

    if skipped:
        logger.info("CSV decode skipped %d of %d rows", skipped, len(rows))
    collection = GeometryCollection(kind="scatter", points=points)
    return LoadOk(collection=collection, skipped=skipped, message=f"CSV loaded: {len(points)} points")
