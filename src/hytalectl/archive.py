"""Download and zip extraction helpers shared by install and update workflows."""
from __future__ import annotations

import logging
import os
import shutil
import ssl
import stat
import urllib.error
import urllib.request
import zipfile
from pathlib import Path

import certifi

from .errors import ExtractFailedError, FetchFailedError

LOGGER = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 60.0
_CHUNK_SIZE = 1024 * 1024


def _ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def fetch(url: str, destination: Path, *, timeout: float = DEFAULT_FETCH_TIMEOUT) -> Path:
    """Download *url* to *destination* and return the local path.

    The body is streamed into a hidden sibling file and renamed into place only
    once complete, so an interrupted download never leaves a truncated archive
    at *destination*. There is no retry: the operator re-runs the command.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(f".{destination.name}.part")
    request = urllib.request.Request(url, headers={"User-Agent": "hytalectl"})
    LOGGER.debug("Fetching %s -> %s", url, destination)
    try:
        with urllib.request.urlopen(request, timeout=timeout, context=_ssl_context()) as resp:
            status = getattr(resp, "status", 200)
            if not 200 <= status < 300:
                raise FetchFailedError(f"Download of {url} failed with HTTP {status}.")
            with partial.open("wb") as handle:
                shutil.copyfileobj(resp, handle, _CHUNK_SIZE)
        os.replace(partial, destination)
    except urllib.error.HTTPError as exc:
        raise FetchFailedError(f"Download of {url} failed with HTTP {exc.code}.") from exc
    except urllib.error.URLError as exc:
        raise FetchFailedError(f"Download of {url} failed: {exc.reason}") from exc
    except OSError as exc:
        raise FetchFailedError(f"Download of {url} failed: {exc}") from exc
    finally:
        partial.unlink(missing_ok=True)
    return destination


def extract(archive_path: Path, dest_dir: Path) -> list[Path]:
    """Extract every member of *archive_path* into *dest_dir*.

    Existing files are overwritten. Unix permission bits stored in the archive
    are restored so bundled executables stay runnable.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    root = dest_dir.resolve()
    extracted: list[Path] = []
    try:
        with zipfile.ZipFile(archive_path) as bundle:
            for member in bundle.infolist():
                target = (dest_dir / member.filename).resolve()
                if target != root and root not in target.parents:
                    raise ExtractFailedError(
                        f"Archive member {member.filename!r} escapes {dest_dir}."
                    )
                bundle.extract(member, dest_dir)
                _restore_mode(member, target)
                if not member.is_dir():
                    extracted.append(target)
    except zipfile.BadZipFile as exc:
        raise ExtractFailedError(f"{archive_path} is not a valid zip archive: {exc}") from exc
    except FileNotFoundError as exc:
        raise ExtractFailedError(f"Archive not found: {archive_path}") from exc
    except OSError as exc:
        raise ExtractFailedError(f"Failed to extract {archive_path}: {exc}") from exc
    return extracted


def _restore_mode(member: zipfile.ZipInfo, target: Path) -> None:
    mode = (member.external_attr >> 16) & 0o7777
    if not mode or stat.S_ISLNK(member.external_attr >> 16):
        return
    os.chmod(target, stat.S_IMODE(mode))


__all__ = ["extract", "fetch"]
