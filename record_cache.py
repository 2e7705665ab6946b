"""Time-boxed JSON cache for raw Airtable records."""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

DEFAULT_RECORD_CACHE_DIR = ".cache"
RECORD_CACHE_TTL = timedelta(days=1)

LOGGER = logging.getLogger(__name__)


class RecordCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any, ttl: timedelta) -> None: ...


class JsonFileCache:
    """Store each key as ``<directory>/<key>.json`` with an expiry timestamp."""

    def __init__(self, directory: str | Path | None = None) -> None:
        if directory is None:
            directory = os.getenv("RECORD_CACHE_DIR", DEFAULT_RECORD_CACHE_DIR)
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing, corrupt or expired."""
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with path.open(encoding="utf-8") as fh:
                entry = json.load(fh)
            expires_at = datetime.fromisoformat(entry["expires_at"])
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None

        if expires_at <= datetime.now(UTC):
            LOGGER.info("Cache entry %s expired at %s", key, expires_at.isoformat())
            return None
        return entry.get("value")

    def put(self, key: str, value: Any, ttl: timedelta) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        entry = {
            "expires_at": (datetime.now(UTC) + ttl).isoformat(),
            "value": value,
        }
        tmp_path = path.with_name(f"{path.name}.tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(entry, fh)
        os.replace(tmp_path, path)
        LOGGER.debug("Cached %s until %s", key, entry["expires_at"])
