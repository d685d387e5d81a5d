"""APT provider used to install base packages and the Adoptium JDK."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .. import archive
from ..errors import FetchFailedError, InstallError

ADOPTIUM_KEY_URL = "https://packages.adoptium.net/artifactory/api/gpg/key/public"
ADOPTIUM_REPO_URL = "https://packages.adoptium.net/artifactory/deb"
BASE_PACKAGES: tuple[str, ...] = ("wget", "apt-transport-https", "gpg", "unzip")


class AptError(InstallError):
    """Raised when apt or gpg commands fail."""


@dataclass(slots=True)
class AptProvider:
    """Thin wrapper over ``apt`` and ``gpg`` for installer steps."""

    apt_bin: str = "apt"
    gpg_bin: str = "gpg"
    keyring_path: Path = Path("/etc/apt/trusted.gpg.d/adoptium.gpg")
    sources_path: Path = Path("/etc/apt/sources.list.d/adoptium.list")
    scratch_dir: Path = Path("/tmp")

    def update(self) -> None:
        """Refresh package lists."""
        self._run([self.apt_bin, "update"], error="apt update failed")

    def install(self, packages: Sequence[str]) -> None:
        """Install *packages* non-interactively."""
        self._run(
            [self.apt_bin, "install", "-y", *packages],
            error=f"Failed to install packages: {' '.join(packages)}",
        )

    def add_adoptium_repository(self, codename: str) -> None:
        """Import the Adoptium signing key and register its repository."""
        key_file = self.scratch_dir / "adoptium.key"
        try:
            archive.fetch(ADOPTIUM_KEY_URL, key_file)
        except FetchFailedError as exc:
            raise AptError(f"Failed to download Adoptium GPG key: {exc}") from exc
        try:
            self.keyring_path.parent.mkdir(parents=True, exist_ok=True)
            with key_file.open("rb") as source, self.keyring_path.open("wb") as target:
                self._run(
                    [self.gpg_bin, "--dearmor"],
                    error="Failed to import Adoptium GPG key",
                    stdin=source,
                    stdout=target,
                )
        except OSError as exc:
            raise AptError(f"Failed to import Adoptium GPG key: {exc}") from exc
        finally:
            key_file.unlink(missing_ok=True)

        line = f"deb {ADOPTIUM_REPO_URL} {codename} main\n"
        try:
            self.sources_path.parent.mkdir(parents=True, exist_ok=True)
            self.sources_path.write_text(line, encoding="utf-8")
        except OSError as exc:
            raise AptError(f"Failed to add Adoptium repository: {exc}") from exc

    def install_jdk(self, version: str) -> None:
        """Install the Temurin JDK *version*."""
        self.install([f"temurin-{version}-jdk"])

    def _run(
        self,
        args: Sequence[str],
        *,
        error: str,
        stdin: object | None = None,
        stdout: object | None = None,
    ) -> None:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                stdin=stdin,  # type: ignore[arg-type]
                stdout=stdout,  # type: ignore[arg-type]
                check=False,
            )
        except FileNotFoundError as exc:
            raise AptError(f"{error}: {args[0]} not found") from exc
        if result.returncode != 0:
            raise AptError(f"{error} (exit {result.returncode}).")


__all__ = ["BASE_PACKAGES", "AptError", "AptProvider"]
