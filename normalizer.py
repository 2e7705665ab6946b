"""Map raw Airtable records onto the fixed NormalizedRecord shape."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Iterable

from models import AttachmentRef, NormalizedRecord

LOGGER = logging.getLogger(__name__)

# Airtable column names, in the order they are read.
FIELD_NAME = "Name"
FIELD_AUTHORS = "Author(s)"
FIELD_YEAR = "Year"
FIELD_ABOUT = "About"
FIELD_SHOWCASE = "Showcase"
FIELD_KSA_SAMPLER = "KSA Sampler transparent"
FIELD_ARCHIVE_FILE = "Archive file"
FIELD_ARCHIVE_NAME2 = "Archive name2"
FIELD_CREATED = "Created"

ALL_FIELDS = (
    FIELD_NAME,
    FIELD_AUTHORS,
    FIELD_YEAR,
    FIELD_ABOUT,
    FIELD_SHOWCASE,
    FIELD_KSA_SAMPLER,
    FIELD_ARCHIVE_FILE,
    FIELD_ARCHIVE_NAME2,
    FIELD_CREATED,
)


def normalize_records(raw_records: Iterable[Any]) -> list[NormalizedRecord]:
    """Normalize every raw record, keeping length and order.

    Never raises on malformed data: unusable values simply become None and
    the record is filtered out later by the resolver.
    """
    normalized: list[NormalizedRecord] = []
    for raw in raw_records:
        missing = missing_fields(raw)
        if missing:
            LOGGER.debug("Record %s is missing fields: %s", _record_id(raw), ", ".join(missing))
        normalized.append(normalize_record(raw))
    return normalized


def normalize_record(raw: Any) -> NormalizedRecord:
    fields = _fields(raw)
    return NormalizedRecord(
        name=_as_str(fields.get(FIELD_NAME)),
        authors=_as_str(fields.get(FIELD_AUTHORS)),
        year=_as_year(fields.get(FIELD_YEAR)),
        about=_first_attachment(fields.get(FIELD_ABOUT)),
        showcase=_first_attachment(fields.get(FIELD_SHOWCASE)),
        ksa_sampler=_first_attachment(fields.get(FIELD_KSA_SAMPLER)),
        archive_file=_first_attachment(fields.get(FIELD_ARCHIVE_FILE)),
        archive_file_name2=_as_str(fields.get(FIELD_ARCHIVE_NAME2)),
        created=_parse_datetime(fields.get(FIELD_CREATED)),
    )


def missing_fields(raw: Any) -> list[str]:
    """Return the Airtable field names that are absent or empty on ``raw``."""
    fields = _fields(raw)
    return [name for name in ALL_FIELDS if fields.get(name) in (None, "", [])]


def _fields(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict) and isinstance(raw.get("fields"), dict):
        return raw["fields"]
    return {}


def _record_id(raw: Any) -> str:
    if isinstance(raw, dict) and isinstance(raw.get("id"), str):
        return raw["id"]
    return "<unknown>"


def _first_attachment(value: Any) -> AttachmentRef | None:
    if not isinstance(value, list) or not value or not isinstance(value[0], dict):
        return None

    item = value[0]
    attachment_id = item.get("id")
    url = item.get("url")
    filename = item.get("filename")
    if not (isinstance(attachment_id, str) and isinstance(url, str) and isinstance(filename, str)):
        return None
    return AttachmentRef(id=attachment_id, url=url, filename=filename)


def _parse_datetime(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None

    # Airtable returns ISO 8601 timestamps with a trailing Z.
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _as_str(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _as_year(value: Any) -> str | int | float | None:
    # Number columns keep their JSON type in the snapshot.
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    return None
