"""Download record attachments into the local attachments directory."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

import requests

from models import AttachmentRef, DownloadedFile, NormalizedRecord

DEFAULT_ATTACHMENTS_DIR = "attachments"
MAX_CONCURRENT_DOWNLOADS = 10
REQUEST_TIMEOUT_SECONDS = 60

ABOUT_PREFIX = "about-"
KSA_SAMPLER_PREFIX = "ksa-sampler-"
SHOWCASE_PREFIX = "showcase-"

LOGGER = logging.getLogger(__name__)


def attachments_dir() -> Path:
    return Path(os.getenv("ATTACHMENTS_DIR", DEFAULT_ATTACHMENTS_DIR))


def attachment_path(ref: AttachmentRef, prefix: str, directory: str | Path | None = None) -> Path:
    """Return the deterministic local path for one attachment role.

    The file name is ``<prefix><id>-<filename>`` lowercased, so the same
    attachment always lands on the same path.
    """
    directory = Path(directory) if directory is not None else attachments_dir()
    return directory / f"{prefix}{ref.id}-{ref.filename}".lower()


def download_attachment(
    ref: AttachmentRef | None,
    prefix: str,
    directory: str | Path | None = None,
) -> DownloadedFile | None:
    """Ensure a local copy of ``ref`` exists and describe it.

    Existing files are trusted as-is and never re-fetched. Network errors
    propagate to the caller.
    """
    if ref is None:
        return None

    path = attachment_path(ref, prefix, directory)
    downloaded = DownloadedFile(id=ref.id, filepath=path.as_posix(), filename=ref.filename)
    if path.exists():
        return downloaded

    response = requests.get(ref.url, timeout=REQUEST_TIMEOUT_SECONDS)
    response.raise_for_status()

    path.parent.mkdir(parents=True, exist_ok=True)
    # A partial download must never sit at the final path.
    part_path = path.with_name(f"{path.name}.part")
    part_path.write_bytes(response.content)
    os.replace(part_path, path)

    LOGGER.info("Downloaded %s", path.name)
    return downloaded


def download_record_attachments(
    record: NormalizedRecord,
    directory: str | Path | None = None,
) -> list[DownloadedFile]:
    """Download the about, KSA sampler and showcase images of one record."""
    files = [
        download_attachment(record.about, ABOUT_PREFIX, directory),
        download_attachment(record.ksa_sampler, KSA_SAMPLER_PREFIX, directory),
        download_attachment(record.showcase, SHOWCASE_PREFIX, directory),
    ]
    return [f for f in files if f is not None]


def download_all(
    records: Iterable[NormalizedRecord],
    directory: str | Path | None = None,
    max_workers: int = MAX_CONCURRENT_DOWNLOADS,
) -> list[DownloadedFile]:
    """Download attachments for all records, ``max_workers`` records at a time."""
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        per_record = executor.map(lambda r: download_record_attachments(r, directory), records)
        return [f for files in per_record for f in files]
