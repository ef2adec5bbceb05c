"""
Logging setup for the API and the CLI.

The packaged `config/logging.yaml` is the base; the level comes from settings
(`GEODASH_LOG_LEVEL`) unless the caller passes one. geopandas, pyogrio and rasterio
report recoverable decode problems (restored `.shx` indexes, missing CRS, ...) as Python
warnings; those are routed into logging so they land next to the decoder messages
instead of on bare stderr.
"""

from __future__ import annotations

import copy
import logging
import logging.config

from geodash.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Apply the packaged dictConfig with `level` (or the configured level) on root and handlers."""
    level = (level or get_settings().app.log_level).upper()
    config = copy.deepcopy(get_logging_config())

    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        handler["level"] = level

    logging.config.dictConfig(config)
    logging.captureWarnings(True)
