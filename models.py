"""Shared typed models for the theme sync pipeline."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class AttachmentRef:
    """Remote attachment as listed by Airtable. The url expires; id does not."""

    id: str
    url: str
    filename: str


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """Fixed-shape theme record extracted from a raw Airtable record."""

    name: str | None = None
    authors: str | None = None
    year: str | int | float | None = None
    about: AttachmentRef | None = None
    showcase: AttachmentRef | None = None
    ksa_sampler: AttachmentRef | None = None
    archive_file: AttachmentRef | None = None
    archive_file_name2: str | None = None
    created: datetime | None = None


@dataclass(frozen=True, slots=True)
class DownloadedFile:
    """Local copy of one attachment."""

    id: str
    filepath: str
    filename: str


@dataclass(frozen=True, slots=True)
class ResolvedRecord:
    """Theme record with attachments replaced by local file paths."""

    name: str | None = None
    authors: str | None = None
    year: str | int | float | None = None
    about: str | None = None
    showcase: str | None = None
    ksa_sampler: str | None = None
    archive_file_name2: str | None = None
    created: datetime | None = None
    archive_filename: str | None = None

    def has_any_value(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    def is_valid(self) -> bool:
        """Return True when the record can be published on the site."""
        return bool(
            self.name
            and (self.year or self.authors)
            and self.about
            and self.showcase
            and self.ksa_sampler
            and self.archive_filename
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the snapshot shape consumed by the site generator.

        Absent values are omitted, except ``created`` which is always present
        (``None`` when the source timestamp was missing or unparsable).
        """
        data: dict[str, Any] = {
            "name": self.name,
            "authors": self.authors,
            "year": self.year,
            "about": self.about,
            "showcase": self.showcase,
            "archiveFileName2": self.archive_file_name2,
            "ksaSampler": self.ksa_sampler,
        }
        data = {key: value for key, value in data.items() if value is not None}
        data["created"] = _format_timestamp(self.created)
        if self.archive_filename is not None:
            data["archiveFilename"] = self.archive_filename
        return data


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
