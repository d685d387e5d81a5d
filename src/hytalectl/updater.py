"""Update orchestration for an installed Hytale server.

The orchestrator probes the installed and latest versions, decides whether an
update is needed, and then (with operator consent) stops the server, fetches
the new build, backs up the critical files and swaps them in. Configuration
and world data are never touched. The backup is the only rollback mechanism:
nothing is retried and a failed replacement is restored by hand.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from rich.console import Console

from . import archive
from .backups import BackupRecord, BackupStore
from .config import AppConfig
from .errors import (
    ExtractFailedError,
    NotInstalledError,
    OperatorCancelledError,
    ServerBusyError,
)
from .locking import LockManager
from .logging import OperationScope
from .providers.downloader import DownloaderProvider
from .providers.server import SERVER_JAR, ServerProvider
from .supervisor import SupervisorAdapter, SupervisorState
from .versions import UNKNOWN_VERSION, UpdateDecision, decide, normalize_version

LOGGER = logging.getLogger(__name__)

ConfirmFn = Callable[[str, bool], bool]

# (path inside the update archive, file name under <root>/Server)
UPDATE_FILES: tuple[tuple[str, str], ...] = (
    ("Server/HytaleServer.jar", "HytaleServer.jar"),
    ("Server/HytaleServer.aot", "HytaleServer.aot"),
    ("Assets.zip", "Assets.zip"),
)


class UpdateStatus(StrEnum):
    """Final status of an update run."""

    UP_TO_DATE = "up-to-date"
    UPDATED = "updated"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class UpdateOutcome:
    """What an update run decided and did."""

    status: UpdateStatus
    decision: UpdateDecision
    current_version: str
    latest_version: str
    backup: BackupRecord | None = None
    stopped: SupervisorState = field(default_factory=SupervisorState.none_running)
    restart_command: str | None = None
    replaced: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "status": self.status.value,
            "decision": self.decision.value,
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "backup": self.backup.to_dict() if self.backup else None,
            "stopped": self.stopped.to_dict(),
            "restart_command": self.restart_command,
            "replaced": list(self.replaced),
            "skipped": list(self.skipped),
        }


class UpdateOrchestrator:
    """Drive the update lifecycle for one installation root."""

    def __init__(
        self,
        config: AppConfig,
        *,
        supervisor: SupervisorAdapter,
        locks: LockManager,
        confirm: ConfirmFn,
        console: Console | None = None,
        op: OperationScope | None = None,
    ) -> None:
        """Bind collaborators; *confirm* asks the operator a yes/no question."""
        self.config = config
        self.supervisor = supervisor
        self.locks = locks
        self.confirm = confirm
        self.console = console or Console()
        self.op = op

    def run_update(self, install_root: Path, requested_patchline: str) -> UpdateOutcome:
        """Check for, and with consent apply, an update to *install_root*."""
        root = install_root.expanduser()
        server = ServerProvider(root / "Server", java_bin=self.config.java_bin)
        if not server.server_dir.is_dir():
            raise NotInstalledError(
                f"Hytale server not found at {server.server_dir}. Please run the installer first."
            )
        if not server.jar_path.is_file():
            raise NotInstalledError(f"{SERVER_JAR} not found. Please run the installer first.")

        self._heading("Checking for Hytale server updates")
        current_raw = server.current_version()
        if current_raw == UNKNOWN_VERSION:
            self._warn("Could not determine current server version. Will proceed with update check.")
        else:
            self._info(f"Current version: [cyan]{current_raw}[/cyan]")
        self._step("probe.current", detail=current_raw)

        downloader = DownloaderProvider(
            root,
            self.config.downloader_url,
            probe_timeout=self.config.probe_timeout,
        )
        if downloader.ensure_present():
            self._step("downloader.fetch", detail=str(downloader.binary_path))

        self._info("Checking latest available version...")
        latest = downloader.probe_latest(requested_patchline)
        self._info(f"Latest version: [cyan]{latest}[/cyan]")
        self._step("probe.latest", detail=latest)

        current = normalize_version(current_raw)
        decision = decide(current_raw, latest)
        outcome = UpdateOutcome(
            status=UpdateStatus.UP_TO_DATE,
            decision=decision,
            current_version=current,
            latest_version=latest,
        )
        if decision is UpdateDecision.UP_TO_DATE:
            return outcome

        if decision is UpdateDecision.VERSION_UNKNOWN:
            self._warn("Could not compare versions. Proceeding with update...")
        else:
            self._info(f"Update available: {current} -> {latest}")

        try:
            self._require("Do you want to update the server?", default=False)
        except OperatorCancelledError:
            self._step("update.confirm", status="info", detail="declined")
            outcome.status = UpdateStatus.CANCELLED
            return outcome

        with self.locks.install_lock(root) as handle:
            if self.op is not None:
                self.op.set_lock_wait_ms(handle.wait_ms)
            outcome.stopped = self._stop_if_running()
            self._apply(root, server, downloader, requested_patchline, outcome)

        outcome.status = UpdateStatus.UPDATED
        outcome.restart_command = self.supervisor.suggested_start_command(outcome.stopped)
        return outcome

    # ------------------------------------------------------------------
    def _stop_if_running(self) -> SupervisorState:
        state = self.supervisor.detect_running(self.config.container_prefix)
        if not state.running:
            return state
        self._warn(f"Hytale server is currently running ({state.describe()}).")
        try:
            self._require(f"Stop the {state.describe()} before updating?", default=True)
        except OperatorCancelledError as exc:
            raise ServerBusyError(
                "Cannot update while the server is running. Please stop the server first."
            ) from exc
        self._heading(f"Stopping {state.describe()}...")
        self.supervisor.stop(state)
        self._success("Server stopped.")
        self._step("supervisor.stop", detail=state.describe())
        return state

    def _apply(
        self,
        root: Path,
        server: ServerProvider,
        downloader: DownloaderProvider,
        patchline: str,
        outcome: UpdateOutcome,
    ) -> None:
        update_zip = root / f"{outcome.latest_version}.zip"
        scratch: Path | None = None
        try:
            self._heading("Downloading update...")
            downloader.download(update_zip, patchline)
            self._step("update.download", detail=str(update_zip))

            self._heading("Backing up current server files...")
            outcome.backup = BackupStore(root).create_backup(
                metadata={
                    "from_version": outcome.current_version,
                    "to_version": outcome.latest_version,
                    "patchline": patchline,
                }
            )
            self._success(f"Backup saved to: {outcome.backup.path}")
            self._step("backup.create", detail=str(outcome.backup.path))

            self._heading("Extracting update...")
            scratch = Path(tempfile.mkdtemp(prefix="hytalectl-update-"))
            archive.extract(update_zip, scratch)

            self._heading("Updating server files...")
            self._replace_files(scratch, server.server_dir, outcome)
            self._step("update.replace", detail=", ".join(outcome.replaced))
        finally:
            if scratch is not None:
                shutil.rmtree(scratch, ignore_errors=True)
            update_zip.unlink(missing_ok=True)

    def _replace_files(self, scratch: Path, server_dir: Path, outcome: UpdateOutcome) -> None:
        for relative, target_name in UPDATE_FILES:
            source = scratch / relative
            if not source.is_file():
                LOGGER.debug("Update archive has no %s; keeping current file", relative)
                outcome.skipped.append(target_name)
                continue
            try:
                shutil.copy2(source, server_dir / target_name)
            except OSError as exc:
                backup = outcome.backup.path if outcome.backup else "the backups directory"
                raise ExtractFailedError(
                    f"Failed to update {target_name}: {exc}. Restore from {backup}."
                ) from exc
            outcome.replaced.append(target_name)

    def _require(self, prompt: str, *, default: bool) -> None:
        if not self.confirm(prompt, default):
            raise OperatorCancelledError(prompt)

    def _step(self, name: str, *, status: str = "success", detail: str = "") -> None:
        if self.op is not None:
            self.op.add_step(name, status=status, detail=detail)

    def _heading(self, message: str) -> None:
        self.console.print(f"[bold cyan]==>[/bold cyan] [bold]{message}[/bold]")

    def _info(self, message: str) -> None:
        self.console.print(f"[blue]\\[INFO][/blue] {message}")

    def _warn(self, message: str) -> None:
        self.console.print(f"[yellow]\\[WARN][/yellow] {message}")

    def _success(self, message: str) -> None:
        self.console.print(f"[green]\\[SUCCESS][/green] {message}")


__all__ = ["UPDATE_FILES", "UpdateOrchestrator", "UpdateOutcome", "UpdateStatus"]
