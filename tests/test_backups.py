"""Tests for the backup store."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
from conftest import make_install

from hytalectl.backups import CRITICAL_FILES, BackupStore
from hytalectl.errors import BackupError

MOMENT = datetime(2026, 1, 14, 12, 30, 5)


def test_create_backup_copies_critical_files(tmp_path: Path) -> None:
    """All present critical files are copied with a manifest."""
    make_install(tmp_path)
    store = BackupStore(tmp_path)

    record = store.create_backup(metadata={"from_version": "2026.01.13-50e69c385"}, now=MOMENT)

    assert record.id == "20260114_123005"
    assert record.path == tmp_path / "backups" / "20260114_123005"
    assert record.files == list(CRITICAL_FILES)
    assert record.missing == []
    for name in CRITICAL_FILES:
        assert (record.path / name).read_bytes() == (tmp_path / "Server" / name).read_bytes()
    manifest = json.loads((record.path / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["id"] == "20260114_123005"
    assert manifest["metadata"] == {"from_version": "2026.01.13-50e69c385"}


def test_create_backup_skips_missing_files(tmp_path: Path) -> None:
    """Absent files are recorded rather than failing the backup."""
    server_dir = make_install(tmp_path)
    (server_dir / "HytaleServer.aot").unlink()

    record = BackupStore(tmp_path).create_backup(now=MOMENT)

    assert record.files == ["HytaleServer.jar", "Assets.zip"]
    assert record.missing == ["HytaleServer.aot"]
    assert not (record.path / "HytaleServer.aot").exists()


def test_create_backup_id_collision(tmp_path: Path) -> None:
    """A second backup in the same second is refused."""
    make_install(tmp_path)
    store = BackupStore(tmp_path)
    store.create_backup(now=MOMENT)

    with pytest.raises(BackupError, match="already exists"):
        store.create_backup(now=MOMENT)


def test_list_backups_newest_first(tmp_path: Path) -> None:
    """Backups are listed newest first, including ones without a manifest."""
    make_install(tmp_path)
    store = BackupStore(tmp_path)
    store.create_backup(now=MOMENT)
    legacy = tmp_path / "backups" / "20251201_080000"
    legacy.mkdir()
    (legacy / "HytaleServer.jar").write_bytes(b"legacy")

    records = store.list_backups()

    assert [record.id for record in records] == ["20260114_123005", "20251201_080000"]
    assert records[1].files == ["HytaleServer.jar"]
    assert records[1].created_at == "2025-12-01T08:00:00"


def test_list_backups_empty(tmp_path: Path) -> None:
    """No backups directory means no backups."""
    assert BackupStore(tmp_path).list_backups() == []


@pytest.mark.parametrize("backup_id", ["", "..", "../Server", "missing"])
def test_find_rejects_unknown_ids(tmp_path: Path, backup_id: str) -> None:
    """Invalid or unknown identifiers return None."""
    (tmp_path / "backups").mkdir()

    assert BackupStore(tmp_path).find(backup_id) is None


def test_restore_round_trip(tmp_path: Path) -> None:
    """Restoring a backup brings back the exact pre-update bytes."""
    server_dir = make_install(tmp_path, jar=b"v1-jar")
    store = BackupStore(tmp_path)
    record = store.create_backup(now=MOMENT)
    (server_dir / "HytaleServer.jar").write_bytes(b"v2-jar")
    (server_dir / "Assets.zip").write_bytes(b"v2-assets")

    found = store.find(record.id)
    assert found is not None
    restored = store.restore_backup(found)

    assert restored == list(CRITICAL_FILES)
    assert (server_dir / "HytaleServer.jar").read_bytes() == b"v1-jar"
    assert (server_dir / "Assets.zip").read_bytes() == b"old-assets"


def test_restore_missing_file_raises(tmp_path: Path) -> None:
    """A tampered backup raises BackupError."""
    make_install(tmp_path)
    store = BackupStore(tmp_path)
    record = store.create_backup(now=MOMENT)
    (record.path / "Assets.zip").unlink()

    with pytest.raises(BackupError, match="missing Assets.zip"):
        store.restore_backup(record)
