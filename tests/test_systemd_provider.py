"""Tests for the systemd provider."""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from hytalectl.providers import systemd as systemd_module
from hytalectl.providers.systemd import SystemdError, SystemdProvider
from hytalectl.templates import TemplateEngine


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _make_provider(tmp_path: Path) -> SystemdProvider:
    systemd_dir = tmp_path / "systemd"
    systemd_dir.mkdir(parents=True, exist_ok=True)
    return SystemdProvider(
        templates=TemplateEngine.with_overrides(None),
        service_name="hytale-server",
        systemd_dir=systemd_dir,
        systemctl_bin="systemctl",  # Not invoked; monkeypatched in tests.
    )


@pytest.fixture
def provider(tmp_path: Path) -> SystemdProvider:
    """Return a provider instance scoped to the temporary path."""
    return _make_provider(tmp_path)


def _context() -> dict[str, str]:
    return {
        "working_directory": "/opt/Hytale/Server",
        "exec_start": "/usr/bin/java -jar HytaleServer.jar --assets Assets.zip --disable-sentry",
    }


def _record_runs(
    monkeypatch: pytest.MonkeyPatch,
    *,
    returncode: int = 0,
    stderr: str = "",
) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        calls.append(list(args))
        return DummyResult(returncode=returncode, stderr=stderr)

    monkeypatch.setattr(systemd_module.subprocess, "run", fake_run)
    return calls


def test_render_unit_writes_file_and_reload(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """Rendering writes the unit file and triggers a daemon reload once."""
    calls = _record_runs(monkeypatch)

    changed = provider.render_unit(_context())

    assert changed is True
    assert provider.unit_path.name == "hytale-server.service"
    content = provider.unit_path.read_text(encoding="utf-8")
    assert "WorkingDirectory=/opt/Hytale/Server" in content
    assert calls == [["systemctl", "daemon-reload"]]


def test_render_unit_leaves_existing_unit_untouched(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """An operator-customised unit is never overwritten."""
    calls = _record_runs(monkeypatch)
    provider.unit_path.write_text("[Service]\nExecStart=/custom\n", encoding="utf-8")

    changed = provider.render_unit(_context())

    assert changed is False
    assert provider.unit_path.read_text(encoding="utf-8") == "[Service]\nExecStart=/custom\n"
    assert calls == []


def test_is_active_uses_quiet_query(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """is-active exit codes map to booleans without raising."""
    calls = _record_runs(monkeypatch, returncode=3)

    assert provider.is_active() is False
    assert calls == [["systemctl", "is-active", "--quiet", "hytale-server.service"]]

    _record_runs(monkeypatch, returncode=0)
    assert provider.is_active() is True


def test_is_active_false_when_systemctl_missing(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """A missing systemctl binary reads as inactive."""

    def missing(*args: object, **kwargs: object) -> DummyResult:
        raise FileNotFoundError("systemctl")

    monkeypatch.setattr(systemd_module.subprocess, "run", missing)

    assert provider.is_active() is False


@pytest.mark.parametrize("action", ["enable", "start", "stop"])
def test_lifecycle_commands(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
    action: str,
) -> None:
    """Lifecycle helpers call systemctl with the unit name."""
    calls = _record_runs(monkeypatch)

    getattr(provider, action)()

    assert calls == [["systemctl", action, "hytale-server.service"]]


def test_stop_failure_raises(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """Non-zero exits surface stderr in a SystemdError."""
    _record_runs(monkeypatch, returncode=5, stderr="Unit hytale-server.service not loaded.")

    with pytest.raises(SystemdError, match="not loaded"):
        provider.stop()


def test_start_command(provider: SystemdProvider) -> None:
    """The operator hint names the unit."""
    assert provider.start_command() == "sudo systemctl start hytale-server.service"


def test_available_checks_path(
    monkeypatch: pytest.MonkeyPatch,
    provider: SystemdProvider,
) -> None:
    """Availability follows PATH lookup of systemctl."""
    monkeypatch.setattr(systemd_module.shutil, "which", lambda name: None)
    assert provider.available() is False

    monkeypatch.setattr(systemd_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert provider.available() is True
