"""Access to the installed Hytale server artifacts."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..versions import UNKNOWN_VERSION, clean_version_output

LOGGER = logging.getLogger(__name__)

SERVER_JAR = "HytaleServer.jar"
ASSETS_ARCHIVE = "Assets.zip"


@dataclass(slots=True)
class ServerProvider:
    """Probe and launch the server jar under ``<root>/Server``."""

    server_dir: Path
    java_bin: str = "java"

    @property
    def jar_path(self) -> Path:
        """Path to the server's main executable artifact."""
        return self.server_dir / SERVER_JAR

    def is_installed(self) -> bool:
        """Return True when the server directory holds the server jar."""
        return self.server_dir.is_dir() and self.jar_path.is_file()

    def current_version(self) -> str:
        """Return the installed version string, or ``unknown``.

        Probing is best effort: a missing ``java``, a non-zero exit or empty
        output all degrade to ``unknown`` instead of raising.
        """
        try:
            result = subprocess.run(  # noqa: S603, S607
                [self.java_bin, "-jar", SERVER_JAR, "--version"],
                cwd=self.server_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            LOGGER.debug("Version probe failed to launch: %s", exc)
            return UNKNOWN_VERSION
        if result.returncode != 0:
            LOGGER.debug("Version probe exited with %s", result.returncode)
            return UNKNOWN_VERSION
        return clean_version_output(result.stdout)

    def launch_args(self, *, disable_sentry: bool = True) -> list[str]:
        """Return the foreground launch command, relative to :attr:`server_dir`."""
        args = [self.java_bin, "-jar", SERVER_JAR, "--assets", ASSETS_ARCHIVE]
        if disable_sentry:
            args.append("--disable-sentry")
        return args

    def manual_start_command(self) -> str:
        """Return a shell command that starts the server by hand."""
        return f"cd {self.server_dir} && {' '.join(self.launch_args())}"

    def run_foreground(self) -> int:
        """Run the server attached to the terminal and return its exit code."""
        try:
            result = subprocess.run(  # noqa: S603, S607
                self.launch_args(disable_sentry=False),
                cwd=self.server_dir,
                check=False,
            )
        except KeyboardInterrupt:
            return 130
        return result.returncode


__all__ = ["ASSETS_ARCHIVE", "SERVER_JAR", "ServerProvider"]
