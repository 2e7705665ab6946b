"""JSON snapshot of the synced theme records for the site generator."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable

from models import ResolvedRecord

DEFAULT_SNAPSHOT_PATH = "airtable.json"

LOGGER = logging.getLogger(__name__)


def snapshot_path() -> Path:
    return Path(os.getenv("SNAPSHOT_PATH", DEFAULT_SNAPSHOT_PATH))


def write_snapshot(records: Iterable[ResolvedRecord], path: str | Path | None = None) -> Path:
    """Overwrite the snapshot with ``records`` in the given order."""
    path = Path(path) if path is not None else snapshot_path()
    payload = [record.to_dict() for record in records]

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp_path, path)

    LOGGER.info("Wrote %s records to %s", len(payload), path)
    return path
