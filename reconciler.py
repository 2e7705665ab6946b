"""Remove local attachments no valid record references anymore."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from models import ResolvedRecord

ATTACHMENT_GLOB = "*.png"

LOGGER = logging.getLogger(__name__)


def list_attachment_files(directory: str | Path, pattern: str = ATTACHMENT_GLOB) -> list[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(directory.glob(pattern))


def referenced_paths(records: Iterable[ResolvedRecord]) -> set[str]:
    """Collect every attachment path used by ``records``."""
    paths: set[str] = set()
    for record in records:
        for value in (record.about, record.ksa_sampler, record.showcase):
            if value:
                paths.add(_key(value))
    return paths


def files_to_delete(existing: Iterable[str | Path], referenced: set[str]) -> list[Path]:
    """Return the existing files that are not in ``referenced``."""
    return [Path(f) for f in existing if f and _key(f) not in referenced]


def reconcile_attachments(
    directory: str | Path,
    records: Iterable[ResolvedRecord],
    pattern: str = ATTACHMENT_GLOB,
) -> list[Path]:
    """Delete orphaned attachment files and return the deleted paths.

    Deletion is permanent. Errors propagate and abort the run.
    """
    existing = list_attachment_files(directory, pattern)
    orphans = files_to_delete(existing, referenced_paths(records))

    for path in orphans:
        path.unlink()
        LOGGER.info("Deleted orphaned attachment %s", path)
    return orphans


def _key(path: str | Path) -> str:
    return os.path.normpath(os.fspath(path))
