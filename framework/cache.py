"""
Small on-disk JSON cache for data fetched from model hosts.

Files live in $XDG_CACHE_HOME/promptbox (or ~/.cache/promptbox). An entry
older than the caller's max age reads as missing. The cache is an
optimisation only: an unreadable or stale entry means "fetch again".
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def default_cache_dir() -> Path:
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "promptbox"


class Cache:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = Path(directory) if directory else default_cache_dir()

    def read(self, filename: str, max_age: float) -> Any | None:
        """Return the cached JSON value, or None if missing, stale or corrupt."""
        path = self.directory / filename
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None
        if age > max_age:
            logger.debug("Cache entry %s is stale (%.0fs old)", path, age)
            return None

        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None

    def write(self, filename: str, data: Any) -> None:
        path = self.directory / filename
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write cache entry %s: %s", path, exc)
