"""Tests for download and extraction helpers."""
from __future__ import annotations

import io
import os
import urllib.error
import zipfile
from pathlib import Path

import pytest

from hytalectl import archive
from hytalectl.errors import ExtractFailedError, FetchFailedError


class FakeResponse(io.BytesIO):
    """Minimal ``urlopen`` response."""

    def __init__(self, data: bytes, status: int = 200) -> None:
        super().__init__(data)
        self.status = status


def test_extract_writes_members_and_restores_exec_bit(tmp_path: Path) -> None:
    """Members land under the destination with their stored modes."""
    bundle = tmp_path / "bundle.zip"
    with zipfile.ZipFile(bundle, "w") as handle:
        info = zipfile.ZipInfo("hytale-downloader-linux-amd64")
        info.external_attr = 0o755 << 16
        handle.writestr(info, b"#!/bin/sh\n")
        handle.writestr("Server/HytaleServer.jar", b"jar")

    dest = tmp_path / "out"
    extracted = archive.extract(bundle, dest)

    binary = dest / "hytale-downloader-linux-amd64"
    assert binary.read_bytes() == b"#!/bin/sh\n"
    assert os.access(binary, os.X_OK)
    assert (dest / "Server" / "HytaleServer.jar").read_bytes() == b"jar"
    assert sorted(path.name for path in extracted) == [
        "HytaleServer.jar",
        "hytale-downloader-linux-amd64",
    ]


def test_extract_overwrites_existing_files(tmp_path: Path) -> None:
    """Existing files are replaced by archive contents."""
    bundle = tmp_path / "bundle.zip"
    with zipfile.ZipFile(bundle, "w") as handle:
        handle.writestr("Assets.zip", b"new")
    dest = tmp_path / "out"
    dest.mkdir()
    (dest / "Assets.zip").write_bytes(b"old")

    archive.extract(bundle, dest)

    assert (dest / "Assets.zip").read_bytes() == b"new"


def test_extract_rejects_corrupt_archive(tmp_path: Path) -> None:
    """Non-zip input raises ExtractFailedError."""
    bundle = tmp_path / "broken.zip"
    bundle.write_bytes(b"definitely not a zip")

    with pytest.raises(ExtractFailedError, match="not a valid zip"):
        archive.extract(bundle, tmp_path / "out")


def test_extract_missing_archive(tmp_path: Path) -> None:
    """A missing archive raises ExtractFailedError."""
    with pytest.raises(ExtractFailedError, match="not found"):
        archive.extract(tmp_path / "absent.zip", tmp_path / "out")


def test_extract_rejects_path_escape(tmp_path: Path) -> None:
    """Members resolving outside the destination are refused."""
    bundle = tmp_path / "evil.zip"
    with zipfile.ZipFile(bundle, "w") as handle:
        handle.writestr("../escape.txt", b"x")

    with pytest.raises(ExtractFailedError, match="escapes"):
        archive.extract(bundle, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_fetch_writes_destination(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Successful downloads land at the destination with no partial left."""
    seen: dict[str, object] = {}

    def fake_urlopen(request: object, *, timeout: float, context: object) -> FakeResponse:
        seen["url"] = request.full_url  # type: ignore[attr-defined]
        seen["timeout"] = timeout
        return FakeResponse(b"payload")

    monkeypatch.setattr(archive.urllib.request, "urlopen", fake_urlopen)
    destination = tmp_path / "dl" / "hytale-downloader.zip"

    result = archive.fetch("https://example.invalid/dl.zip", destination, timeout=5.0)

    assert result == destination
    assert destination.read_bytes() == b"payload"
    assert seen == {"url": "https://example.invalid/dl.zip", "timeout": 5.0}
    assert list(destination.parent.iterdir()) == [destination]


def test_fetch_http_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """HTTP errors raise FetchFailedError and leave nothing behind."""

    def fake_urlopen(request: object, **kwargs: object) -> FakeResponse:
        raise urllib.error.HTTPError(
            "https://example.invalid/dl.zip", 404, "Not Found", hdrs=None, fp=None  # type: ignore[arg-type]
        )

    monkeypatch.setattr(archive.urllib.request, "urlopen", fake_urlopen)
    destination = tmp_path / "dl.zip"

    with pytest.raises(FetchFailedError, match="HTTP 404"):
        archive.fetch("https://example.invalid/dl.zip", destination)
    assert not destination.exists()


def test_fetch_network_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Connection failures raise FetchFailedError."""

    def fake_urlopen(request: object, **kwargs: object) -> FakeResponse:
        raise urllib.error.URLError("Name or service not known")

    monkeypatch.setattr(archive.urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(FetchFailedError, match="Name or service not known"):
        archive.fetch("https://example.invalid/dl.zip", tmp_path / "dl.zip")


def test_fetch_non_success_status(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Non-2xx responses that do not raise are still failures."""
    monkeypatch.setattr(
        archive.urllib.request,
        "urlopen",
        lambda request, **kwargs: FakeResponse(b"", status=304),
    )
    destination = tmp_path / "dl.zip"

    with pytest.raises(FetchFailedError, match="HTTP 304"):
        archive.fetch("https://example.invalid/dl.zip", destination)
    assert not destination.exists()
