"""
Ingestion pipeline: extension dispatch + overlay commit.

`ingest()` is the pure part: pick a decoder from the file extension (case-insensitive)
and return its `LoadResult`. Unknown extensions never reach a decoder.

`IngestionPipeline.ingest()` is the async entrypoint used by the API: it issues a
request token for the target overlay slot, decodes in a worker thread so the event loop
stays responsive, then commits to the overlay only if no newer upload for the same slot
was issued meanwhile. Errors never touch the overlay.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from geodash.config.settings import Settings, get_settings
from geodash.domain.models import ErrorKind, LoadError, LoadOk, LoadRaster, LoadResult
from geodash.ingestion.archive import decode_archive
from geodash.ingestion.raster import decode_raster
from geodash.ingestion.table import decode_table
from geodash.ingestion.vector import decode_vector
from geodash.overlay.state import LayerKind, OverlayManager

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes, "Settings | None"], LoadResult]

DECODERS: dict[str, Decoder] = {
    "csv": decode_table,
    "geojson": decode_vector,
    "json": decode_vector,
    "zip": decode_archive,
    "shp": decode_archive,
    "tif": decode_raster,
    "tiff": decode_raster,
}

RASTER_EXTENSIONS = frozenset({"tif", "tiff"})
TEXT_EXTENSIONS = frozenset({"csv", "geojson", "json"})

UNSUPPORTED_MESSAGE = "Unsupported file type. Use CSV, GeoJSON, SHP(zip) or TIF"


def extension_of(filename: str) -> str:
    """Lower-cased text after the last dot ("" when there is none)."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def slot_for(extension: str) -> LayerKind:
    return LayerKind.RASTER if extension in RASTER_EXTENSIONS else LayerKind.VECTORS


def ingest(filename: str, raw: bytes, settings: Settings | None = None) -> LoadResult:
    """Dispatch `raw` to the decoder registered for the file's extension."""
    ext = extension_of(filename)
    decoder = DECODERS.get(ext)
    if decoder is None:
        logger.info("Rejected upload %r: unsupported extension %r", filename, ext)
        return LoadError(ErrorKind.UNSUPPORTED_FORMAT, UNSUPPORTED_MESSAGE)

    logger.info("Decoding %r (%d bytes) as %s", filename, len(raw), ext)
    try:
        return decoder(raw, settings)
    except Exception as exc:
        # Decoders return errors as values; this only catches a decoder bug.
        logger.exception("Decoder for %r raised", filename)
        kind = ErrorKind.PARSE_ERROR if ext in TEXT_EXTENSIONS else ErrorKind.DECODE_ERROR
        return LoadError(kind, f"File processing error: {exc}")


@dataclass(frozen=True)
class IngestOutcome:
    """A load result plus whether it was committed to the overlay."""

    filename: str
    result: LoadResult
    committed: bool


class IngestionPipeline:
    """Async ingest with last-issued-upload-wins commits to an `OverlayManager`."""

    def __init__(self, overlay: OverlayManager, settings: Settings | None = None):
        self._overlay = overlay
        self._settings = settings or get_settings()

    def apply(self, result: LoadResult, *, token: int | None = None) -> bool:
        """Commit a successful result to its overlay slot; errors leave state untouched."""
        if isinstance(result, LoadOk):
            return self._overlay.replace_scatter(result.collection, token=token)
        if isinstance(result, LoadRaster):
            return self._overlay.set_raster(result.raster, token=token)
        return False

    async def ingest(self, filename: str, raw: bytes) -> IngestOutcome:
        ext = extension_of(filename)
        if ext not in DECODERS:
            return IngestOutcome(filename, ingest(filename, raw, self._settings), committed=False)

        token = self._overlay.issue_token(slot_for(ext))
        result = await asyncio.to_thread(ingest, filename, raw, self._settings)
        committed = self.apply(result, token=token)
        if isinstance(result, LoadError):
            logger.warning("Upload %r failed: %s (%s)", filename, result.message, result.kind.value)
        elif not committed:
            logger.info("Upload %r decoded but superseded by a newer upload", filename)
        return IngestOutcome(filename, result, committed)
