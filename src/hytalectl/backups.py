"""Timestamped backups of the server files replaced during an update."""
from __future__ import annotations

import json
import os
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from .errors import BackupError

SERVER_DIR_NAME = "Server"
BACKUPS_DIR_NAME = "backups"
MANIFEST_NAME = "manifest.json"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Files swapped by an update. Configuration and world data are never touched.
CRITICAL_FILES: tuple[str, ...] = ("HytaleServer.jar", "HytaleServer.aot", "Assets.zip")


@dataclass(slots=True)
class BackupRecord:
    """A backup directory and the files it holds."""

    id: str
    path: Path
    created_at: str
    files: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-serialisable manifest payload."""
        return {
            "id": self.id,
            "path": str(self.path),
            "created_at": self.created_at,
            "files": list(self.files),
            "missing": list(self.missing),
            "metadata": dict(self.metadata),
        }


class BackupStore:
    """Create, list and restore backups under ``<root>/backups``."""

    def __init__(
        self,
        install_root: Path,
        *,
        critical_files: Sequence[str] = CRITICAL_FILES,
    ) -> None:
        """Bind the store to *install_root*."""
        self.install_root = install_root.expanduser()
        self.critical_files = tuple(critical_files)

    @property
    def server_dir(self) -> Path:
        """Directory holding the live server files."""
        return self.install_root / SERVER_DIR_NAME

    @property
    def root(self) -> Path:
        """Directory holding all backups."""
        return self.install_root / BACKUPS_DIR_NAME

    def create_backup(
        self,
        *,
        metadata: Mapping[str, object] | None = None,
        now: datetime | None = None,
    ) -> BackupRecord:
        """Copy the critical files into a new timestamped directory.

        Missing sources are skipped (not every installation ships the AOT
        cache). The directory is fully written before this returns.
        """
        moment = now or datetime.now()
        backup_id = moment.strftime(TIMESTAMP_FORMAT)
        backup_dir = self.root / backup_id
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            backup_dir.mkdir()
        except FileExistsError as exc:
            raise BackupError(f"Backup directory already exists: {backup_dir}") from exc
        except OSError as exc:
            raise BackupError(f"Failed to create backup directory {backup_dir}: {exc}") from exc

        record = BackupRecord(
            id=backup_id,
            path=backup_dir,
            created_at=datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
            metadata=dict(metadata or {}),
        )
        for name in self.critical_files:
            source = self.server_dir / name
            if not source.is_file():
                record.missing.append(name)
                continue
            try:
                shutil.copy2(source, backup_dir / name)
            except OSError as exc:
                raise BackupError(f"Failed to back up {source}: {exc}") from exc
            record.files.append(name)

        self._write_manifest(record)
        return record

    def list_backups(self) -> list[BackupRecord]:
        """Return known backups, newest first."""
        if not self.root.is_dir():
            return []
        records: list[BackupRecord] = []
        for entry in sorted(self.root.iterdir(), reverse=True):
            if entry.is_dir():
                records.append(self._load_record(entry))
        return records

    def find(self, backup_id: str) -> BackupRecord | None:
        """Return the backup named *backup_id* if present."""
        normalized = backup_id.strip()
        if not normalized or "/" in normalized or normalized in {".", ".."}:
            return None
        path = self.root / normalized
        if not path.is_dir():
            return None
        return self._load_record(path)

    def restore_backup(self, record: BackupRecord) -> list[str]:
        """Copy the files of *record* back over the live server directory."""
        restored: list[str] = []
        try:
            self.server_dir.mkdir(parents=True, exist_ok=True)
            for name in record.files:
                source = record.path / name
                if not source.is_file():
                    raise BackupError(f"Backup {record.id} is missing {name}.")
                shutil.copy2(source, self.server_dir / name)
                restored.append(name)
        except OSError as exc:
            raise BackupError(f"Failed to restore backup {record.id}: {exc}") from exc
        return restored

    # ------------------------------------------------------------------
    def _write_manifest(self, record: BackupRecord) -> None:
        manifest = record.path / MANIFEST_NAME
        try:
            manifest.write_text(json.dumps(record.to_dict(), indent=2) + "\n", encoding="utf-8")
            os.chmod(manifest, 0o640)
        except OSError as exc:
            raise BackupError(f"Failed to write backup manifest {manifest}: {exc}") from exc

    def _load_record(self, path: Path) -> BackupRecord:
        manifest = path / MANIFEST_NAME
        payload: dict[str, object] = {}
        if manifest.is_file():
            try:
                loaded = json.loads(manifest.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                loaded = {}
            if isinstance(loaded, dict):
                payload = loaded

        files = payload.get("files")
        if not isinstance(files, list):
            # Backups written by the shell installer carry no manifest.
            files = [name for name in self.critical_files if (path / name).is_file()]
        missing = payload.get("missing")
        metadata = payload.get("metadata")
        return BackupRecord(
            id=path.name,
            path=path,
            created_at=str(payload.get("created_at") or _created_from_name(path.name)),
            files=[str(name) for name in files],
            missing=[str(name) for name in missing] if isinstance(missing, list) else [],
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )


def _created_from_name(name: str) -> str:
    try:
        moment = datetime.strptime(name, TIMESTAMP_FORMAT)
    except ValueError:
        return ""
    return moment.isoformat(timespec="seconds")


__all__ = ["BACKUPS_DIR_NAME", "CRITICAL_FILES", "BackupRecord", "BackupStore"]
