"""Structured operation logging for hytalectl.

Every CLI operation appends a single JSON record to ``operations.jsonl`` under
the configured logs directory. Records capture the command, arguments, the
steps performed, lock wait time and the final result. Logging must never break
the command it observes: if the directory or file cannot be written the
logger disables itself and carries on.
"""
from __future__ import annotations

import json
import logging
import os
import secrets
import time
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result for a single operation."""

    def __init__(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise an empty scope for *command*."""
        self.command = command
        self.operation_id = f"op-{datetime.now(tz=UTC):%Y%m%d%H%M%S}-{secrets.token_hex(3)}"
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: dict[str, object] | None = None
        self.started_at = _now_iso()
        self._started = time.monotonic()

    def add_step(self, name: str, *, status: str = "success", detail: str = "") -> None:
        """Record a named step."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its lock."""
        self.lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        backups: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            backups=backups,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        backups: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation complete with warnings."""
        self._set_result(
            "warning",
            message,
            warnings=warnings,
            errors=errors,
            changed=changed,
            backups=backups,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        backups: Iterable[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int = 0,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "rc": rc,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "backups": [str(item) for item in backups or []],
            "context": _sanitize(dict(context or {})),
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON-serialisable log record."""
        duration_ms = int((time.monotonic() - self._started) * 1000)
        record: dict[str, object] = {
            "id": self.operation_id,
            "command": self.command,
            "started_at": self.started_at,
            "duration_ms": duration_ms,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": list(self.steps),
            "result": self.result,
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Append operation records to ``operations.jsonl``."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging when it cannot be created."""
        self.log_dir = log_dir.expanduser()
        self._operations_log_path = self.log_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Operation log disabled, cannot create %s: %s", self.log_dir, exc)
            self._enabled = False

    @property
    def path(self) -> Path:
        """Location of the operations log."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__, errors=[repr(exc)])
            raise
        finally:
            if scope.result is None:
                scope.success("Operation completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False))
                handle.write("\n")
            os.chmod(self._operations_log_path, 0o640)
        except OSError as exc:
            LOGGER.debug("Operation log disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
