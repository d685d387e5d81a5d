"""Tests for the installed server provider."""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest
from conftest import DummyResult, make_install

from hytalectl.providers import server as server_module
from hytalectl.providers.server import ServerProvider
from hytalectl.versions import UNKNOWN_VERSION


def test_is_installed(tmp_path: Path) -> None:
    """The jar must exist inside the server directory."""
    provider = ServerProvider(tmp_path / "Server")
    assert provider.is_installed() is False

    make_install(tmp_path)
    assert provider.is_installed() is True


def test_current_version_runs_jar(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The version probe runs inside the server directory and strips output."""
    server_dir = make_install(tmp_path)
    seen: dict[str, object] = {}

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        seen["args"] = list(args)
        seen["cwd"] = kwargs.get("cwd")
        return DummyResult(stdout="HytaleServer v2026.01.13-50e69c385 (release)\r\n")

    monkeypatch.setattr(server_module.subprocess, "run", fake_run)

    version = ServerProvider(server_dir, java_bin="/usr/bin/java").current_version()

    assert version == "HytaleServer v2026.01.13-50e69c385 (release)"
    assert seen == {
        "args": ["/usr/bin/java", "-jar", "HytaleServer.jar", "--version"],
        "cwd": server_dir,
    }


@pytest.mark.parametrize(
    "outcome",
    [
        DummyResult(returncode=1, stderr="Error: Unable to access jarfile"),
        DummyResult(stdout=""),
        FileNotFoundError("java"),
    ],
)
def test_current_version_degrades_to_unknown(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    outcome: object,
) -> None:
    """Probe failures never raise."""

    def fake_run(*args: object, **kwargs: object) -> object:
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(server_module.subprocess, "run", fake_run)

    assert ServerProvider(make_install(tmp_path)).current_version() == UNKNOWN_VERSION


def test_run_foreground_interrupted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Ctrl+C during the foreground run maps to exit code 130."""

    def interrupted(*args: object, **kwargs: object) -> DummyResult:
        raise KeyboardInterrupt

    monkeypatch.setattr(server_module.subprocess, "run", interrupted)

    assert ServerProvider(tmp_path).run_foreground() == 130


def test_run_foreground_omits_sentry_flag(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The first authenticated run keeps crash reporting enabled."""
    seen: list[list[str]] = []

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        seen.append(list(args))
        return DummyResult(returncode=0)

    monkeypatch.setattr(server_module.subprocess, "run", fake_run)

    assert ServerProvider(tmp_path).run_foreground() == 0
    assert seen == [["java", "-jar", "HytaleServer.jar", "--assets", "Assets.zip"]]
