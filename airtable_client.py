"""Airtable REST integration for the theme records table."""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any
from urllib.parse import quote

import requests

from record_cache import RECORD_CACHE_TTL, RecordCache

AIRTABLE_API_BASE_URL = "https://api.airtable.com/v0"
DEFAULT_TABLE = "Kaleidoscope Schemes"
DEFAULT_VIEW = "Grid view"
DEFAULT_MAX_RECORDS = 100
RECORDS_CACHE_KEY = "garden.macthemes.airtable"
REQUEST_TIMEOUT_SECONDS = 30
MAX_RETRIES = 3
# Rate limits and transient gateway errors; any other 4xx/5xx fails at once.
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

LOGGER = logging.getLogger(__name__)


def fetch_raw_records(cache: RecordCache | None = None, *, refresh: bool = False) -> list[dict[str, Any]]:
    """Return raw Airtable records, served from ``cache`` while it is fresh.

    Args:
        cache: Optional cache consulted before and filled after the API call.
        refresh: Ignore any cached value and always hit the API.
    """
    if cache is not None and not refresh:
        cached = cache.get(RECORDS_CACHE_KEY)
        if cached is not None:
            LOGGER.info("Using %s cached Airtable records", len(cached))
            return cached

    records = list_records()

    if cache is not None:
        cache.put(RECORDS_CACHE_KEY, records, ttl=RECORD_CACHE_TTL)
    return records


def list_records(
    table: str | None = None,
    view: str | None = None,
    max_records: int | None = None,
) -> list[dict[str, Any]]:
    """List records of a table view, following Airtable's offset pagination.

    Table, view and record limit default to AIRTABLE_TABLE, AIRTABLE_VIEW and
    AIRTABLE_MAX_RECORDS, read when the call is made.
    """
    base_id, headers = _airtable_context()
    table = table or os.getenv("AIRTABLE_TABLE", DEFAULT_TABLE)
    if max_records is None:
        max_records = int(os.getenv("AIRTABLE_MAX_RECORDS", str(DEFAULT_MAX_RECORDS)))
    params: dict[str, Any] = {
        "maxRecords": max_records,
        "view": view or os.getenv("AIRTABLE_VIEW", DEFAULT_VIEW),
    }
    url = f"{AIRTABLE_API_BASE_URL}/{base_id}/{quote(table, safe='')}"

    records: list[dict[str, Any]] = []
    while True:
        response = _get_with_retries(url=url, headers=headers, params=params)
        body = response.json()
        records.extend(body.get("records", []))

        offset = body.get("offset")
        if not offset:
            break
        params = {**params, "offset": offset}

    LOGGER.debug("Listed %s records from table=%s", len(records), table)
    return records


def _airtable_context() -> tuple[str, dict[str, str]]:
    # Missing credentials are left for Airtable to reject.
    token = os.getenv("AIRTABLE_TOKEN", "")
    base_id = os.getenv("AIRTABLE_BASE_ID", "")
    headers = {"Authorization": f"Bearer {token}"}
    return base_id, headers


def _get_with_retries(
    *,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any],
) -> requests.Response:
    """GET a page of records, retrying rate limits and transient failures.

    Waits for the server's Retry-After when it sends one, otherwise backs off
    exponentially from one second. Authentication and lookup errors are not
    retried.
    """
    delay_seconds = 1.0
    attempt = 0

    while True:
        attempt += 1
        try:
            response = requests.get(
                url,
                headers=headers,
                params=params,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            if attempt >= MAX_RETRIES:
                raise RuntimeError(
                    f"Airtable API request failed after {attempt} attempts: {exc}"
                ) from exc
            LOGGER.warning("Airtable request error (attempt %s/%s): %s", attempt, MAX_RETRIES, exc)
            time.sleep(delay_seconds)
            delay_seconds *= 2
            continue

        if response.status_code in RETRYABLE_STATUS_CODES and attempt < MAX_RETRIES:
            wait_seconds = _retry_after(response, default=delay_seconds)
            LOGGER.warning(
                "Airtable returned HTTP %s (attempt %s/%s), retrying in %.1fs",
                response.status_code,
                attempt,
                MAX_RETRIES,
                wait_seconds,
            )
            time.sleep(wait_seconds)
            delay_seconds *= 2
            continue

        if response.status_code >= 400:
            raise RuntimeError(
                f"Airtable API request failed with HTTP {response.status_code}: {_error_detail(response)}"
            )
        return response


def _retry_after(response: requests.Response, default: float) -> float:
    try:
        return max(float(response.headers.get("Retry-After")), 0.0)
    except (TypeError, ValueError):
        return default


def _error_detail(response: requests.Response) -> str:
    """Render Airtable's ``{"error": ...}`` body, or the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return f"{error.get('type', '')}: {error.get('message', '')}".strip(": ")
    if error:
        return str(error)
    return json.dumps(body)
