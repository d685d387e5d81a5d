"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
import zipfile
from pathlib import Path

import pytest


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def write_zip(path: Path, entries: dict[str, bytes]) -> Path:
    """Write a zip archive at *path* containing *entries*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return path


def make_install(root: Path, *, jar: bytes = b"old-jar") -> Path:
    """Create a minimal installed server tree under *root*."""
    server_dir = root / "Server"
    server_dir.mkdir(parents=True, exist_ok=True)
    (server_dir / "HytaleServer.jar").write_bytes(jar)
    (server_dir / "HytaleServer.aot").write_bytes(b"old-aot")
    (server_dir / "Assets.zip").write_bytes(b"old-assets")
    return server_dir


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)
