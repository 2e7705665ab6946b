from __future__ import annotations

import hashlib
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

import archive_mirror
from archive_mirror import (
    DOWNLOADED,
    FAILED,
    SKIPPED,
    archive_names,
    md5_of_file,
    mirror_archive,
    mirror_archives,
    parse_manifest,
)
from models import ResolvedRecord

BASE_URL = "https://files.example.test"


@pytest.fixture(autouse=True)
def patch_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARCHIVES_BASE_URL", BASE_URL)


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _manifest_resp(text: str) -> MagicMock:
    mock = MagicMock()
    mock.text = text
    return mock


def _archive_resp(data: bytes) -> MagicMock:
    mock = MagicMock()
    mock.__enter__.return_value = mock
    mock.iter_content.return_value = [data[:3], data[3:]]
    return mock


def _server(files: dict[str, bytes], manifests: dict[str, str] | None = None):
    """Fake requests.get serving ``files`` and their md5 manifests by name."""
    manifests = manifests or {}

    def fake_get(url: str, **kwargs):
        name = url.removeprefix(f"{BASE_URL}/")
        if name.endswith(".md5"):
            archive = name.removesuffix(".md5")
            if archive not in files:
                raise requests.HTTPError(f"404 for {url}")
            text = manifests.get(archive, f"{_md5(files[archive])}  {archive}\n")
            return _manifest_resp(text)
        if name not in files:
            raise requests.HTTPError(f"404 for {url}")
        return _archive_resp(files[name])

    return fake_get


def test_parse_manifest_takes_first_token() -> None:
    assert parse_manifest("d41d8cd98f00b204e9800998ecf8427e  Theme.sit\n") == "d41d8cd98f00b204e9800998ecf8427e"
    assert parse_manifest("abc123") == "abc123"


def test_parse_manifest_rejects_empty_text() -> None:
    with pytest.raises(ValueError):
        parse_manifest("   \n")


def test_md5_of_file(tmp_path: Path) -> None:
    path = tmp_path / "x.sit"
    path.write_bytes(b"hello world")
    assert md5_of_file(path) == _md5(b"hello world")


def test_archive_names_are_distinct_in_first_seen_order() -> None:
    records = [
        ResolvedRecord(archive_filename="b.sit"),
        ResolvedRecord(archive_filename=None),
        ResolvedRecord(archive_filename="a.sit"),
        ResolvedRecord(archive_filename="b.sit"),
    ]
    assert archive_names(records) == ["b.sit", "a.sit"]


def test_mirror_archive_downloads_missing_archive(tmp_path: Path) -> None:
    data = b"stuffit archive bytes"

    with patch("archive_mirror.requests.get", side_effect=_server({"Theme.sit": data})) as mock_get:
        result = mirror_archive("Theme.sit", tmp_path)

    assert result == DOWNLOADED
    assert (tmp_path / "Theme.sit").read_bytes() == data
    assert (tmp_path / "Theme.sit.md5").read_text() == f"{_md5(data)}  Theme.sit\n"
    assert mock_get.call_count == 2
    assert not (tmp_path / "Theme.sit.part").exists()


def test_mirror_archive_skips_when_checksum_matches(tmp_path: Path) -> None:
    data = b"same bytes"
    (tmp_path / "Theme.sit").write_bytes(data)

    with patch("archive_mirror.requests.get", side_effect=_server({"Theme.sit": data})) as mock_get:
        result = mirror_archive("Theme.sit", tmp_path)

    assert result == SKIPPED
    mock_get.assert_called_once()
    assert mock_get.call_args.args[0] == f"{BASE_URL}/Theme.sit.md5"
    assert not (tmp_path / "Theme.sit.md5").exists()


def test_mirror_archive_rewrites_on_mismatch(tmp_path: Path) -> None:
    remote = b"new remote bytes"
    (tmp_path / "Theme.sit").write_bytes(b"stale local bytes")
    (tmp_path / "Theme.sit.md5").write_text("0000 Theme.sit\n")

    with patch("archive_mirror.requests.get", side_effect=_server({"Theme.sit": remote})) as mock_get:
        result = mirror_archive("Theme.sit", tmp_path)

    assert result == DOWNLOADED
    assert mock_get.call_count == 2
    assert (tmp_path / "Theme.sit").read_bytes() == remote
    assert (tmp_path / "Theme.sit.md5").read_text().split()[0] == _md5(remote)


def test_mirror_archive_missing_manifest_is_logged_not_raised(tmp_path: Path, caplog) -> None:
    with patch("archive_mirror.requests.get", side_effect=_server({})):
        result = mirror_archive("Ghost.sit", tmp_path)

    assert result == FAILED
    assert "Ghost.sit" in caplog.text
    assert not (tmp_path / "Ghost.sit").exists()


def test_mirror_archives_isolates_failures(tmp_path: Path) -> None:
    data = b"good archive"
    fake = _server({"Good.sit": data})

    with patch("archive_mirror.requests.get", side_effect=fake):
        results = mirror_archives(["Broken.sit", "Good.sit"], tmp_path)

    assert results == {"Broken.sit": FAILED, "Good.sit": DOWNLOADED}
    assert (tmp_path / "Good.sit").read_bytes() == data


def test_mirror_archives_waits_for_every_archive(tmp_path: Path) -> None:
    files = {f"t{i}.sit": f"archive {i}".encode() for i in range(15)}

    with patch("archive_mirror.requests.get", side_effect=_server(files)):
        results = mirror_archives(list(files), tmp_path, max_workers=3)

    assert set(results.values()) == {DOWNLOADED}
    for name, data in files.items():
        assert (tmp_path / name).read_bytes() == data


def _track_concurrency(fake_get, stats: dict[str, int]):
    """Wrap ``fake_get`` to record the peak number of calls in flight."""
    lock = threading.Lock()

    def tracked(url: str, **kwargs):
        with lock:
            stats["active"] += 1
            stats["peak"] = max(stats["peak"], stats["active"])
        try:
            time.sleep(0.02)
            return fake_get(url, **kwargs)
        finally:
            with lock:
                stats["active"] -= 1

    return tracked


def test_mirror_archives_default_pool_size_is_ten() -> None:
    assert archive_mirror.MAX_CONCURRENT_DOWNLOADS == 10


def test_mirror_archives_never_exceeds_pool_size(tmp_path: Path) -> None:
    files = {f"t{i}.sit": f"archive {i}".encode() for i in range(30)}
    stats = {"active": 0, "peak": 0}

    with patch("archive_mirror.requests.get", side_effect=_track_concurrency(_server(files), stats)):
        results = mirror_archives(list(files), tmp_path)

    assert set(results.values()) == {DOWNLOADED}
    assert 1 < stats["peak"] <= archive_mirror.MAX_CONCURRENT_DOWNLOADS
