"""Wrapper around the standalone ``hytale-downloader`` binary."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .. import archive
from ..errors import FetchFailedError, VersionProbeError
from ..versions import parse_downloader_report

LOGGER = logging.getLogger(__name__)

DOWNLOADER_BINARY = "hytale-downloader-linux-amd64"
DOWNLOADER_ARCHIVE = "hytale-downloader.zip"


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


@dataclass(slots=True)
class DownloaderProvider:
    """Fetch, probe and drive the downloader living in the installation root."""

    install_root: Path
    source_url: str
    probe_timeout: float = 10.0

    @property
    def binary_path(self) -> Path:
        """Location of the downloader executable."""
        return self.install_root / DOWNLOADER_BINARY

    def is_present(self) -> bool:
        """Return True when the downloader executable exists."""
        return self.binary_path.is_file()

    def ensure_present(self) -> bool:
        """Fetch and unpack the downloader when missing; return True if fetched."""
        if self.is_present():
            return False
        bundle = self.install_root / DOWNLOADER_ARCHIVE
        LOGGER.info("Downloader not found, fetching %s", self.source_url)
        archive.fetch(self.source_url, bundle)
        archive.extract(bundle, self.install_root)
        if not self.is_present():
            raise FetchFailedError(
                f"{DOWNLOADER_ARCHIVE} did not contain {DOWNLOADER_BINARY}."
            )
        return True

    def probe_latest(self, patchline: str) -> str:
        """Return the latest version on *patchline*.

        The downloader keeps running after printing the version it resolved,
        so it is killed once :attr:`probe_timeout` expires and whatever it
        printed until then is parsed.
        """
        command = [str(self.binary_path), "-patchline", patchline]
        try:
            result = subprocess.run(  # noqa: S603
                command,
                cwd=self.install_root,
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
                check=False,
            )
            output = _decode(result.stdout) + _decode(result.stderr)
        except subprocess.TimeoutExpired as exc:
            output = _decode(exc.stdout) + _decode(exc.stderr)
        except OSError as exc:
            raise VersionProbeError(f"Failed to run downloader: {exc}") from exc

        latest = parse_downloader_report(output)
        if latest is None:
            raise VersionProbeError(
                "Could not determine latest version from downloader output.",
                output=output,
            )
        return latest

    def download(self, destination: Path, patchline: str, *, interactive: bool = False) -> Path:
        """Download the server archive for *patchline* to *destination*.

        ``interactive`` leaves the terminal attached so the operator can answer
        the downloader's authentication prompts.
        """
        command = [
            str(self.binary_path),
            "-download-path",
            str(destination),
            "-patchline",
            patchline,
        ]
        try:
            result = subprocess.run(  # noqa: S603
                command,
                cwd=self.install_root,
                capture_output=not interactive,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise FetchFailedError(f"Failed to run downloader: {exc}") from exc
        if result.returncode != 0:
            detail = ""
            if not interactive:
                detail = (result.stderr or result.stdout or "").strip()
            message = f"Downloader exited with status {result.returncode}"
            raise FetchFailedError(f"{message}: {detail}" if detail else f"{message}.")
        if not destination.is_file():
            raise FetchFailedError(f"Downloader did not produce {destination}.")
        return destination


__all__ = ["DOWNLOADER_BINARY", "DownloaderProvider"]
