"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from hytalectl.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("update", args={"patchline": "release"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("update") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("install") as op:
        op.success("done", changed=0)


def test_operation_scope_records_steps_and_lock_wait(tmp_path: Path) -> None:
    """Steps, lock wait and backups are persisted in the record."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("update", args={"yes": True}, target={"root": Path("/opt/Hytale")}) as op:
        op.add_step("version.probe", detail="2026.01.13-50e69c385")
        op.set_lock_wait_ms(12)
        op.success("Updated.", changed=3, backups=["20260114_120000"])

    (record,) = _records(logger)
    assert record["command"] == "update"
    assert record["args"] == {"yes": True}
    assert record["target"] == {"root": "/opt/Hytale"}
    assert record["lock_wait_ms"] == 12
    assert record["steps"] == [
        {"name": "version.probe", "status": "success", "detail": "2026.01.13-50e69c385"}
    ]
    result = record["result"]
    assert result["status"] == "success"
    assert result["changed"] == 3
    assert result["backups"] == ["20260114_120000"]


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("update", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            backups=["20260114_120000"],
            context={"path": Path("/opt/Hytale"), "obj": Custom()},
        )

    (record,) = _records(logger)
    result = record["result"]
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["backups"] == ["20260114_120000"]
    assert result["context"] == {"path": "/opt/Hytale", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("update") as op:
        op.error("boom", errors=None, context={"value": {1, 2}})

    (record,) = _records(logger)
    result = record["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["context"] == {"value": "{1, 2}"}


def test_operation_records_unhandled_exception(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an error and re-raised."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError, match="kaput"):
        with logger.operation("install"):
            raise RuntimeError("kaput")

    (record,) = _records(logger)
    assert record["result"]["status"] == "error"
    assert record["result"]["message"] == "kaput"


def test_operation_defaults_to_success(tmp_path: Path) -> None:
    """Scopes without an explicit result are recorded as successful."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("config show"):
        pass

    (record,) = _records(logger)
    assert record["result"]["status"] == "success"
