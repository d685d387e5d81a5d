"""Systemd provider for the Hytale server service unit."""
from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import SupervisorError
from ..templates import TemplateEngine

UNIT_TEMPLATE = "systemd/service.j2"


class SystemdError(SupervisorError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Render and manage the server's systemd service unit."""

    templates: TemplateEngine
    service_name: str = "hytale-server"
    systemd_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"

    @property
    def unit_name(self) -> str:
        """Return the systemd unit name."""
        return f"{self.service_name}.service"

    @property
    def unit_path(self) -> Path:
        """Return the full path for the unit file."""
        return self.systemd_dir / self.unit_name

    def available(self) -> bool:
        """Return True when ``systemctl`` can be found."""
        return shutil.which(self.systemctl_bin) is not None

    def unit_exists(self) -> bool:
        """Return True when the unit file has been installed."""
        return self.unit_path.exists()

    def render_unit(self, context: Mapping[str, object]) -> bool:
        """Write the unit file when absent; an existing unit is left untouched."""
        if self.unit_exists():
            return False
        changed = self.templates.render_to_path(UNIT_TEMPLATE, self.unit_path, context, mode=0o644)
        if changed:
            self._reload_daemon()
        return changed

    def is_active(self) -> bool:
        """Return True when systemd reports the unit as active."""
        try:
            result = self._systemctl("is-active", "--quiet", self.unit_name, check=False)
        except SystemdError:
            return False
        return result.returncode == 0

    def enable(self) -> subprocess.CompletedProcess[str]:
        """Enable the unit at boot."""
        return self._systemctl("enable", self.unit_name)

    def start(self) -> subprocess.CompletedProcess[str]:
        """Start the unit."""
        return self._systemctl("start", self.unit_name)

    def stop(self) -> subprocess.CompletedProcess[str]:
        """Stop the unit."""
        return self._systemctl("stop", self.unit_name)

    def start_command(self) -> str:
        """Return the command an operator runs to start the service."""
        return f"sudo {self.systemctl_bin} start {self.unit_name}"

    # ------------------------------------------------------------------
    def _reload_daemon(self) -> None:
        try:
            self._systemctl("daemon-reload")
        except SystemdError as exc:
            if "not found" in str(exc).lower():
                return
            raise

    def _systemctl(
        self,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.systemctl_bin, *args]
        return self._run_command(command, check=check, error_prefix=" ".join(command[:2]))

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SystemdError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise SystemdError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["SystemdError", "SystemdProvider"]
