"""CLI entrypoint for syncing theme records and assets from Airtable."""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from airtable_client import fetch_raw_records
from archive_mirror import archive_names, mirror_archives
from attachments import attachments_dir, download_all
from normalizer import normalize_records
from reconciler import reconcile_attachments
from record_cache import JsonFileCache
from resolver import is_downloadable, resolve_records
from snapshot import write_snapshot


def parse_args() -> argparse.Namespace:
    """Parse command-line flags.

    Both flags are optional; without them one invocation runs every stage.
    """
    parser = argparse.ArgumentParser(description="Sync theme records, attachments and archives from Airtable")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore the one-day record cache and query Airtable",
    )
    parser.add_argument(
        "--skip-archives",
        action="store_true",
        help="Do not mirror archives from the file server",
    )
    return parser.parse_args()


def run(refresh: bool = False, skip_archives: bool = False) -> None:
    """Run one full sync.

    Any failure before the archive stage is fatal. Archive failures are
    logged per archive and do not affect the snapshot.
    """
    raw_records = fetch_raw_records(JsonFileCache(), refresh=refresh)
    records = normalize_records(raw_records)
    logging.info("Grabbed %s records", len(records))

    # Only records that can pass validation get their images fetched.
    downloadable = [r for r in records if is_downloadable(r)]
    logging.info(
        "Downloading %s attachments for %s of %s records...",
        3 * len(downloadable),
        len(downloadable),
        len(records),
    )
    files = download_all(downloadable)

    resolved = resolve_records(records, files)
    logging.info("Accepted %s records", len(resolved))

    deleted = reconcile_attachments(attachments_dir(), resolved)
    logging.info("Deleted %s orphaned attachments", len(deleted))

    write_snapshot(resolved)

    if skip_archives:
        logging.info("Skipping archive mirror")
        return

    names = archive_names(resolved)
    logging.info("Mirroring %s archives...", len(names))
    mirror_archives(names)


def main() -> None:
    """Initialize config and execute the sync."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args()
    run(refresh=args.refresh, skip_archives=args.skip_archives)


if __name__ == "__main__":
    main()
