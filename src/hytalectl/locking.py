"""Advisory file locks guarding mutations of an installation root."""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

LOCK_FILE_NAME = ".hytalectl.lock"
_POLL_INTERVAL = 0.05


class LockTimeoutError(RuntimeError):
    """Raised when a lock cannot be acquired within the timeout."""


@dataclass(slots=True)
class LockHandle:
    """An acquired lock and how long acquisition took."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire exclusive ``flock`` locks keyed by installation root.

    A timeout of zero makes acquisition fail fast: a single non-blocking
    attempt is made and :class:`LockTimeoutError` is raised if another process
    holds the lock.
    """

    def __init__(self, default_timeout: float = 0.0) -> None:
        """Initialise the manager with the default acquisition timeout."""
        self.default_timeout = default_timeout

    def lock_path(self, root: Path) -> Path:
        """Return the lock file location for *root*."""
        return root / LOCK_FILE_NAME

    @contextmanager
    def install_lock(self, root: Path, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the exclusive lock for *root* for the duration of the block."""
        path = self.lock_path(root)
        effective_timeout = self.default_timeout if timeout is None else timeout
        with self._acquire(path, effective_timeout) as handle:
            yield handle

    @contextmanager
    def _acquire(self, path: Path, timeout: float) -> Iterator[LockHandle]:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o640)
        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as exc:
                    if time.monotonic() - started >= timeout:
                        holder = _read_holder(path)
                        raise LockTimeoutError(
                            f"Another hytalectl process holds {path}{holder}."
                        ) from exc
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            _write_metadata(fd, path)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


def _write_metadata(fd: int, path: Path) -> None:
    payload = {
        "pid": os.getpid(),
        "path": str(path),
        "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
    }
    data = json.dumps(payload).encode("utf-8")
    os.ftruncate(fd, 0)
    os.lseek(fd, 0, os.SEEK_SET)
    os.write(fd, data)


def _read_holder(path: Path) -> str:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return ""
    pid = data.get("pid") if isinstance(data, dict) else None
    return f" (pid {pid})" if pid else ""


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
