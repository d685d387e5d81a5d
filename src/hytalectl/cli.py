"""Typer-powered command line interface for ``hytalectl``.

Running ``hytalectl`` without a subcommand installs the server, mirroring the
classic setup script; ``hytalectl --update`` (or ``-u``) checks for and
applies updates. Every command records a structured operation log entry.
"""
from __future__ import annotations

import json
import logging
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .backups import BackupStore
from .config import AppConfig, ConfigError, load_config
from .errors import (
    BackupError,
    ExtractFailedError,
    FetchFailedError,
    HytaleCtlError,
    InstallError,
    NotInstalledError,
    PreflightError,
    ServerBusyError,
    SupervisorError,
    VersionProbeError,
)
from .exit_codes import ExitCode
from .installer import Installer
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .providers import (
    AptProvider,
    ContainerProvider,
    FirewallProvider,
    ServerProvider,
    SystemdProvider,
)
from .supervisor import SupervisorAdapter
from .templates import TemplateEngine
from .updater import ConfirmFn, UpdateOrchestrator, UpdateOutcome, UpdateStatus

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to hytalectl's YAML config file.",
)

YES_OPTION = typer.Option(
    False,
    "--yes",
    "-y",
    help="Answer yes to every confirmation prompt (non-interactive mode).",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit machine-readable JSON.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Hytale dedicated server installer and updater.

        Without a subcommand the server is installed under the configured root
        (default /opt/Hytale). Use --update to check for and apply updates.
        """
    ).strip(),
)
backups_app = typer.Typer(help="Inspect and restore update backups.")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(backups_app, name="backup")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine
    systemd: SystemdProvider
    supervisor: SupervisorAdapter
    backups: BackupStore


def _build_runtime(config: AppConfig) -> RuntimeContext:
    templates = TemplateEngine.with_overrides(config.templates_dir)
    systemd = SystemdProvider(
        templates=templates,
        service_name=config.service_name,
        systemd_dir=config.systemd.unit_dir,
        systemctl_bin=config.systemd.systemctl_bin,
    )
    containers = [
        ContainerProvider(engine="docker", binary=config.containers.docker_bin),
        ContainerProvider(engine="podman", binary=config.containers.podman_bin),
    ]
    supervisor = SupervisorAdapter(
        systemd=systemd,
        containers=containers,
        server=ServerProvider(config.server_dir, java_bin=config.java_bin),
        container_prefix=config.container_prefix,
    )
    return RuntimeContext(
        config=config,
        locks=LockManager(config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        templates=templates,
        systemd=systemd,
        supervisor=supervisor,
        backups=BackupStore(config.install_root),
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    runtime = _build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


def _confirmer(auto_confirm: bool) -> ConfirmFn:
    def _confirm(prompt: str, default: bool) -> bool:
        if auto_confirm:
            return True
        return typer.confirm(prompt, default=default)

    return _confirm


def _exit_code_for(exc: BaseException) -> ExitCode:
    if isinstance(exc, (ServerBusyError, LockTimeoutError)):
        return ExitCode.BUSY
    if isinstance(exc, (NotInstalledError, PreflightError)):
        return ExitCode.ENVIRONMENT
    if isinstance(
        exc,
        (
            FetchFailedError,
            ExtractFailedError,
            VersionProbeError,
            BackupError,
            SupervisorError,
            InstallError,
        ),
    ):
        return ExitCode.PROVIDER
    if isinstance(exc, ConfigError):
        return ExitCode.VALIDATION
    return ExitCode.PROVIDER


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]\\[ERROR] {message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _fail(op: OperationScope, exc: HytaleCtlError | LockTimeoutError) -> NoReturn:
    if isinstance(exc, VersionProbeError) and exc.output:
        console.print("[blue]\\[INFO][/blue] Downloader output:")
        console.print(exc.output, markup=False, highlight=False)
    _command_error(op, str(exc), rc=_exit_code_for(exc), errors=[type(exc).__name__, str(exc)])


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the hytalectl version and exit.",
    ),
    update: bool = typer.Option(
        False,
        "--update",
        "-u",
        help="Check for and apply server updates.",
    ),
    yes: bool = YES_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit diagnostic log messages.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    runtime = _ensure_runtime(ctx, config_file)

    if version:
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"hytalectl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is not None:
        return

    if update:
        _run_update(runtime, runtime.config.patchline, auto_confirm=yes)
    else:
        _run_install(runtime, auto_confirm=yes, no_start=False)


@app.command()
def install(
    ctx: typer.Context,
    yes: bool = YES_OPTION,
    no_start: bool = typer.Option(
        False,
        "--no-start",
        help="Do not offer to launch the server after installation.",
    ),
) -> None:
    """Install the JDK, server files, firewall rule and systemd unit."""
    _run_install(_get_runtime(ctx), auto_confirm=yes, no_start=no_start)


@app.command()
def update(
    ctx: typer.Context,
    patchline: str | None = typer.Option(
        None,
        "--patchline",
        help="Release channel to update from (release, pre-release, ...).",
    ),
    yes: bool = YES_OPTION,
) -> None:
    """Check for a newer server build and apply it."""
    runtime = _get_runtime(ctx)
    _run_update(runtime, patchline or runtime.config.patchline, auto_confirm=yes)


def _run_install(runtime: RuntimeContext, *, auto_confirm: bool, no_start: bool) -> None:
    config = runtime.config
    args = {"yes": auto_confirm, "no_start": no_start}
    with runtime.logger.operation(
        "install",
        args=args,
        target={"kind": "installation", "root": str(config.install_root)},
    ) as op:
        installer = Installer(
            config,
            apt=AptProvider(),
            firewall=FirewallProvider(),
            systemd=runtime.systemd,
            locks=runtime.locks,
            confirm=_confirmer(auto_confirm),
            console=console,
            op=op,
        )
        try:
            result = installer.install(start_server=False if no_start else None)
        except (HytaleCtlError, LockTimeoutError) as exc:
            _fail(op, exc)

        if result.server_exit_code is None:
            console.print("[blue]\\[INFO][/blue] To start the server, run:")
            console.print(f"  [green]{result.start_command}[/green]")
        else:
            console.print(
                "[blue]\\[INFO][/blue] Add the server to your Hytale client using "
                "[green]your_ip_address:5520[/green] (or localhost:5520 when local)."
            )
            console.print("[blue]\\[INFO][/blue] To start the server again, run:")
            console.print(f"  [green]{result.start_command}[/green]")
        console.print("[green]\\[SUCCESS][/green] Setup complete!")
        op.success("Installation completed.", changed=1, context=result.to_dict())


def _run_update(runtime: RuntimeContext, patchline: str, *, auto_confirm: bool) -> None:
    config = runtime.config
    with runtime.logger.operation(
        "update",
        args={"patchline": patchline, "yes": auto_confirm},
        target={"kind": "installation", "root": str(config.install_root)},
    ) as op:
        orchestrator = UpdateOrchestrator(
            config,
            supervisor=runtime.supervisor,
            locks=runtime.locks,
            confirm=_confirmer(auto_confirm),
            console=console,
            op=op,
        )
        try:
            outcome = orchestrator.run_update(config.install_root, patchline)
        except (HytaleCtlError, LockTimeoutError) as exc:
            _fail(op, exc)

        _render_update_outcome(outcome)
        backups = [str(outcome.backup.path)] if outcome.backup else []
        changed = len(outcome.replaced) if outcome.status is UpdateStatus.UPDATED else 0
        op.success(
            f"Update finished: {outcome.status.value}.",
            changed=changed,
            backups=backups,
            context=outcome.to_dict(),
        )


def _render_update_outcome(outcome: UpdateOutcome) -> None:
    if outcome.status is UpdateStatus.UP_TO_DATE:
        console.print(
            f"[green]\\[SUCCESS][/green] Server is already up to date! ({outcome.latest_version})"
        )
        return
    if outcome.status is UpdateStatus.CANCELLED:
        console.print("[blue]\\[INFO][/blue] Update cancelled.")
        return

    console.print("[green]\\[SUCCESS][/green] Server updated successfully!")
    console.print(
        f"[blue]\\[INFO][/blue] Updated from {outcome.current_version} "
        f"to {outcome.latest_version}"
    )
    if outcome.backup is not None:
        console.print(
            f"[blue]\\[INFO][/blue] Backup of previous version saved to: {outcome.backup.path}"
        )
    if outcome.skipped:
        console.print(
            "[blue]\\[INFO][/blue] Not present in the update (kept as is): "
            + ", ".join(outcome.skipped)
        )
    console.print("[blue]\\[INFO][/blue] To start the server, run:")
    console.print(f"  [green]{outcome.restart_command}[/green]")


@backups_app.command("list")
def backup_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List update backups, newest first."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("backup list", args={"json": json_output}) as op:
        records = runtime.backups.list_backups()
        if json_output:
            payload = {"backups": [record.to_dict() for record in records]}
            typer.echo(json.dumps(payload, indent=2))
        elif not records:
            console.print(f"No backups found under {runtime.backups.root}.")
        else:
            table = Table(title="Backups")
            table.add_column("ID")
            table.add_column("Created")
            table.add_column("From")
            table.add_column("To")
            table.add_column("Files")
            for record in records:
                table.add_row(
                    record.id,
                    record.created_at,
                    str(record.metadata.get("from_version", "")),
                    str(record.metadata.get("to_version", "")),
                    ", ".join(record.files),
                )
            console.print(table)
        op.success("Listed backups.", changed=0, context={"count": len(records)})


@backups_app.command("restore")
def backup_restore(
    ctx: typer.Context,
    backup_id: str = typer.Argument(..., help="Backup identifier (YYYYMMDD_HHMMSS)."),
    yes: bool = YES_OPTION,
) -> None:
    """Copy a backup's files back over the live server directory."""
    runtime = _get_runtime(ctx)
    config = runtime.config
    with runtime.logger.operation(
        "backup restore",
        args={"backup_id": backup_id, "yes": yes},
        target={"kind": "backup", "id": backup_id},
    ) as op:
        record = runtime.backups.find(backup_id)
        if record is None:
            _command_error(op, f"Backup '{backup_id}' not found.", rc=ExitCode.VALIDATION)

        confirm = _confirmer(yes)
        if not confirm(
            f"Restore {', '.join(record.files)} from backup {record.id}? "
            "Stop the server first.",
            False,
        ):
            console.print("[blue]\\[INFO][/blue] Restore cancelled.")
            op.success("Restore cancelled.", changed=0)
            return

        try:
            with runtime.locks.install_lock(config.install_root) as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                restored = runtime.backups.restore_backup(record)
        except (HytaleCtlError, LockTimeoutError) as exc:
            _fail(op, exc)

        console.print(
            f"[green]\\[SUCCESS][/green] Restored {', '.join(restored)} from {record.path}."
        )
        op.success("Backup restored.", changed=len(restored), backups=[str(record.path)])


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Display the effective configuration."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("config show", args={"json": json_output}) as op:
        payload = runtime.config.to_dict()
        if json_output:
            typer.echo(json.dumps(payload, indent=2))
        else:
            table = Table(title="hytalectl configuration")
            table.add_column("Key")
            table.add_column("Value")
            for key, value in payload.items():
                table.add_row(key, json.dumps(value) if isinstance(value, dict) else str(value))
            console.print(table)
        op.success("Displayed configuration.", changed=0)


def main() -> None:  # pragma: no cover - console script entry point
    """Invoke the Typer application."""
    app()


__all__ = ["app", "main"]
