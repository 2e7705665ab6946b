"""Join normalized records to their downloaded attachments and validate them."""

from __future__ import annotations

import logging
from typing import Iterable

from models import AttachmentRef, DownloadedFile, NormalizedRecord, ResolvedRecord

LEGACY_ARCHIVE_EXTENSION = ".sit"

LOGGER = logging.getLogger(__name__)


def index_downloads(files: Iterable[DownloadedFile]) -> dict[str, DownloadedFile]:
    """Map attachment id to its download; the first occurrence wins."""
    index: dict[str, DownloadedFile] = {}
    for downloaded in files:
        index.setdefault(downloaded.id, downloaded)
    return index


def derive_archive_filename(record: NormalizedRecord) -> str | None:
    """Prefer the attached ``.sit`` archive, else the fallback archive name."""
    attached = record.archive_file.filename if record.archive_file else None
    if attached and attached.endswith(LEGACY_ARCHIVE_EXTENSION):
        return attached
    return record.archive_file_name2 or None


def is_downloadable(record: NormalizedRecord) -> bool:
    """Return True when ``record`` becomes valid once its images are local.

    Records failing this check are dropped by the resolver anyway, so their
    attachments are never fetched and never churn through the reconciler.
    """
    return bool(
        record.name
        and (record.year or record.authors)
        and record.about
        and record.showcase
        and record.ksa_sampler
        and derive_archive_filename(record)
    )


def resolve_record(record: NormalizedRecord, index: dict[str, DownloadedFile]) -> ResolvedRecord:
    return ResolvedRecord(
        name=record.name,
        authors=record.authors,
        year=record.year,
        about=_local_path(record.about, index),
        showcase=_local_path(record.showcase, index),
        ksa_sampler=_local_path(record.ksa_sampler, index),
        archive_file_name2=record.archive_file_name2,
        created=record.created,
        archive_filename=derive_archive_filename(record),
    )


def resolve_records(
    records: Iterable[NormalizedRecord],
    files: Iterable[DownloadedFile],
) -> list[ResolvedRecord]:
    """Resolve records in input order, dropping empty and invalid ones."""
    index = index_downloads(files)
    resolved = [resolve_record(record, index) for record in records]
    non_empty = [r for r in resolved if r.has_any_value()]
    valid = [r for r in non_empty if r.is_valid()]

    LOGGER.info(
        "Resolver: total=%s, valid=%s, dropped=%s",
        len(resolved),
        len(valid),
        len(resolved) - len(valid),
    )
    return valid


def _local_path(ref: AttachmentRef | None, index: dict[str, DownloadedFile]) -> str | None:
    if ref is None:
        return None
    downloaded = index.get(ref.id)
    return downloaded.filepath if downloaded else None
