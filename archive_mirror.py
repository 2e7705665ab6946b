"""Mirror theme archives from the file server, verified by MD5 manifests.

Each archive ``<name>`` on the server has a sibling ``<name>.md5`` whose first
whitespace-delimited token is the hex digest. An archive is downloaded only
when the local copy is missing or its digest differs; the manifest is stored
next to it. Failures are logged per archive and never abort the run, since the
snapshot only needs the archive file name.
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

import requests

from models import ResolvedRecord

DEFAULT_ARCHIVES_BASE_URL = "https://files.macthemes.garden"
DEFAULT_ARCHIVES_DIR = "archives"
MAX_CONCURRENT_DOWNLOADS = 10
REQUEST_TIMEOUT_SECONDS = 60
CHUNK_SIZE = 1024 * 1024

SKIPPED = "skipped"
DOWNLOADED = "downloaded"
FAILED = "failed"

LOGGER = logging.getLogger(__name__)


def archives_dir() -> Path:
    return Path(os.getenv("ARCHIVES_DIR", DEFAULT_ARCHIVES_DIR))


def archives_base_url() -> str:
    return os.getenv("ARCHIVES_BASE_URL", DEFAULT_ARCHIVES_BASE_URL).rstrip("/")


def archive_names(records: Iterable[ResolvedRecord]) -> list[str]:
    """Return distinct archive file names in first-seen order."""
    names: dict[str, None] = {}
    for record in records:
        if record.archive_filename:
            names.setdefault(record.archive_filename, None)
    return list(names)


def parse_manifest(text: str) -> str:
    tokens = text.split()
    if not tokens:
        raise ValueError("Empty checksum manifest")
    return tokens[0]


def md5_of_file(path: str | Path) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def mirror_archive(name: str, directory: str | Path | None = None) -> str:
    """Bring one archive up to date. Returns SKIPPED, DOWNLOADED or FAILED."""
    try:
        return _mirror_archive(name, Path(directory) if directory is not None else archives_dir())
    except Exception:
        LOGGER.exception("Could not download archive %s", name)
        return FAILED


def mirror_archives(
    names: Iterable[str],
    directory: str | Path | None = None,
    max_workers: int = MAX_CONCURRENT_DOWNLOADS,
) -> dict[str, str]:
    """Mirror every archive, ``max_workers`` at a time, and wait for all of them."""
    names = list(names)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        results = dict(zip(names, executor.map(lambda n: mirror_archive(n, directory), names)))

    counts = Counter(results.values())
    LOGGER.info(
        "Archive mirror: total=%s downloaded=%s skipped=%s failed=%s",
        len(names),
        counts[DOWNLOADED],
        counts[SKIPPED],
        counts[FAILED],
    )
    return results


def _mirror_archive(name: str, directory: Path) -> str:
    url = f"{archives_base_url()}/{name}"

    manifest = requests.get(f"{url}.md5", timeout=REQUEST_TIMEOUT_SECONDS)
    manifest.raise_for_status()
    manifest_text = manifest.text
    remote_md5 = parse_manifest(manifest_text)

    path = directory / name
    if path.exists() and md5_of_file(path) == remote_md5:
        LOGGER.info("Skipped archive %s", name)
        return SKIPPED

    directory.mkdir(parents=True, exist_ok=True)
    part_path = path.with_name(f"{path.name}.part")
    with requests.get(url, stream=True, timeout=REQUEST_TIMEOUT_SECONDS) as response:
        response.raise_for_status()
        with part_path.open("wb") as fh:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                fh.write(chunk)
    os.replace(part_path, path)
    path.with_name(f"{path.name}.md5").write_text(manifest_text, encoding="utf-8")

    LOGGER.info("Downloaded archive %s", name)
    return DOWNLOADED
