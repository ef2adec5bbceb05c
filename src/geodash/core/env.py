"""
`.env` discovery.

Service URL overrides (`GEODASH_OSRM_URL`, a self-hosted Photon, ...) usually live in a
repo-local `.env`. The API, the CLI and tests may start from any working directory, so
discovery is explicit:

1. `GEODASH_ENV_FILE` names the file directly.
2. Otherwise python-dotenv searches upwards from the current working directory.

Variables already present in the process environment always win.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)


def find_env_file() -> Path | None:
    """Return the `.env` file GeoDash would load, or None."""
    explicit = os.getenv("GEODASH_ENV_FILE")
    if explicit:
        path = Path(explicit).expanduser().resolve()
        return path if path.is_file() else None

    found = find_dotenv(usecwd=True)
    return Path(found) if found else None


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the discovered `.env` once (without overriding); returns its path or None."""
    path = find_env_file()
    if path is None:
        return None
    load_dotenv(dotenv_path=path, override=False)
    logger.debug("Loaded environment from %s", path)
    return path
