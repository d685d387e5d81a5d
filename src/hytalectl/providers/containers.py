"""Docker and Podman providers for containerised server instances."""
from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import SupervisorError


class ContainerError(SupervisorError):
    """Raised when a container engine command fails."""


@dataclass(slots=True)
class ContainerProvider:
    """Query and control containers through a Docker-compatible CLI."""

    engine: str
    binary: str

    def available(self) -> bool:
        """Return True when the engine CLI is installed."""
        return shutil.which(self.binary) is not None

    def find_running(self, name_prefix: str) -> str | None:
        """Return the first running container whose name starts with *name_prefix*.

        ``--filter name=`` matches substrings, so results are re-checked for
        the prefix. A missing or failing engine is reported as "nothing
        running" rather than an error.
        """
        try:
            result = self._run(
                ["ps", "--filter", f"name={name_prefix}", "--format", "{{.Names}}"],
                check=False,
            )
        except ContainerError:
            return None
        if result.returncode != 0:
            return None
        for line in (result.stdout or "").splitlines():
            name = line.strip()
            if name.startswith(name_prefix):
                return name
        return None

    def stop(self, name: str) -> subprocess.CompletedProcess[str]:
        """Stop container *name*."""
        return self._run(["stop", name])

    def start_command(self, name: str) -> str:
        """Return the command an operator runs to start container *name*."""
        return f"{self.engine} start {name}"

    def _run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.binary, *args]
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ContainerError(f"{self.binary} not found: {exc}") from exc
        if check and result.returncode != 0:
            message = (result.stderr or "").strip() or (result.stdout or "").strip() or "no output"
            raise ContainerError(
                f"{self.engine} {args[0]} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["ContainerError", "ContainerProvider"]
