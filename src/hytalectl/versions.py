"""Version identifiers reported by the Hytale server and downloader.

Identifiers look like ``2026.01.14-3e7a0ba6c``: a build date followed by a
commit hash. They only support equality; two identifiers are either the same
build or a different one, never "newer" or "older".
"""
from __future__ import annotations

import re
from enum import StrEnum

UNKNOWN_VERSION = "unknown"

VERSION_PATTERN = re.compile(r"[0-9]{4}\.[0-9]{2}\.[0-9]{2}-[a-f0-9]+")

# Downloader reports look like:
#   downloading latest ("pre-release" patchline) to "2026.01.14-3e7a0ba6c.zip"
_REPORT_ARCHIVE_PATTERN = re.compile(r'to "(?P<version>[^"]+)\.zip"')
_REPORT_QUOTED_PATTERN = re.compile(r'"(?P<version>[0-9]{4}\.[0-9]{2}\.[0-9]{2}-[a-f0-9]+)')


class UpdateDecision(StrEnum):
    """Result of comparing the installed and latest versions."""

    UP_TO_DATE = "up-to-date"
    UPDATE_AVAILABLE = "update-available"
    VERSION_UNKNOWN = "version-unknown"


def clean_version_output(raw: str | None) -> str:
    """Strip line terminators from a version probe; empty output means unknown."""
    if raw is None:
        return UNKNOWN_VERSION
    cleaned = raw.replace("\r", "").replace("\n", "").strip()
    return cleaned or UNKNOWN_VERSION


def parse_downloader_report(output: str) -> str | None:
    """Return the latest version found in downloader *output*, if any."""
    for pattern in (_REPORT_ARCHIVE_PATTERN, _REPORT_QUOTED_PATTERN):
        match = pattern.search(output)
        if match:
            return match.group("version")
    return None


def normalize_version(raw: str) -> str:
    """Extract the ``date-hash`` token from *raw*, falling back to *raw* itself."""
    match = VERSION_PATTERN.search(raw)
    if match:
        return match.group(0)
    return raw


def decide(current: str, latest: str) -> UpdateDecision:
    """Compare the normalised *current* version against *latest*."""
    if normalize_version(current) == latest:
        return UpdateDecision.UP_TO_DATE
    if current == UNKNOWN_VERSION:
        return UpdateDecision.VERSION_UNKNOWN
    return UpdateDecision.UPDATE_AVAILABLE


__all__ = [
    "UNKNOWN_VERSION",
    "VERSION_PATTERN",
    "UpdateDecision",
    "clean_version_output",
    "decide",
    "normalize_version",
    "parse_downloader_report",
]
