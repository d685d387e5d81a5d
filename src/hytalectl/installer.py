"""First-time installation of a Hytale server on Debian or Ubuntu."""
from __future__ import annotations

import logging
import os
import platform
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from . import archive
from .config import AppConfig
from .errors import HytaleCtlError, InstallError, PreflightError
from .locking import LockManager
from .logging import OperationScope
from .providers.apt import BASE_PACKAGES, AptProvider
from .providers.downloader import DownloaderProvider
from .providers.firewall import FirewallProvider
from .providers.server import ASSETS_ARCHIVE, ServerProvider
from .providers.systemd import SystemdProvider

LOGGER = logging.getLogger(__name__)

MARKER_NAME = ".setup_in_progress"
SERVER_ZIP_NAME = "hytale-server.zip"
SUPPORTED_DISTROS = frozenset({"debian", "ubuntu"})
SUPPORTED_ARCH = "x86_64"
FALLBACK_JAVA = "/usr/bin/java"
AUTH_COMMANDS: tuple[str, ...] = ("/auth persistence Encrypted", "/auth login device")

ConfirmFn = Callable[[str, bool], bool]


@dataclass(slots=True)
class InstallResult:
    """Summary of a completed installation."""

    install_root: Path
    start_command: str
    systemd_unit: Path | None
    firewall_port: str | None
    server_exit_code: int | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "install_root": str(self.install_root),
            "start_command": self.start_command,
            "systemd_unit": str(self.systemd_unit) if self.systemd_unit else None,
            "firewall_port": self.firewall_port,
            "server_exit_code": self.server_exit_code,
        }


def read_os_release(path: Path) -> dict[str, str]:
    """Parse an ``os-release`` file into a mapping."""
    values: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PreflightError(f"Cannot read {path}: {exc}") from exc
    for line in text.splitlines():
        if "=" not in line or line.lstrip().startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


class Installer:
    """Prepare the host and install the server under the configured root."""

    def __init__(
        self,
        config: AppConfig,
        *,
        apt: AptProvider,
        firewall: FirewallProvider,
        systemd: SystemdProvider,
        locks: LockManager,
        confirm: ConfirmFn,
        console: Console | None = None,
        op: OperationScope | None = None,
        os_release_path: Path = Path("/etc/os-release"),
    ) -> None:
        """Bind the installer to its collaborators."""
        self.config = config
        self.apt = apt
        self.firewall = firewall
        self.systemd = systemd
        self.locks = locks
        self.confirm = confirm
        self.console = console or Console()
        self.op = op
        self.os_release_path = os_release_path
        self.server = ServerProvider(config.server_dir, java_bin=config.java_bin)
        self.downloader = DownloaderProvider(
            config.install_root,
            config.downloader_url,
            probe_timeout=config.probe_timeout,
        )

    @property
    def marker_path(self) -> Path:
        """Marker present while an installation is in progress."""
        return self.config.install_root / MARKER_NAME

    def preflight(self) -> dict[str, str]:
        """Verify root privileges, a supported distribution and architecture."""
        if os.geteuid() != 0:
            raise PreflightError("Please run as root.")
        os_release = read_os_release(self.os_release_path)
        distro = os_release.get("ID", "")
        if distro not in SUPPORTED_DISTROS:
            raise PreflightError(
                f"Unsupported distribution: {distro or 'unknown'}. "
                "Only Debian and Ubuntu are supported."
            )
        arch = platform.machine()
        if arch != SUPPORTED_ARCH:
            raise PreflightError(
                f"Unsupported architecture: {arch}. The Hytale server only supports x86_64 (amd64)."
            )
        return os_release

    def install(self, *, start_server: bool | None = None) -> InstallResult:
        """Run every installation step, rolling back the root on failure.

        ``start_server`` of ``None`` asks the operator whether to launch the
        server for its first, authenticated run. An existing installation is
        refused; only a root created by this run is removed on failure.
        """
        os_release = self.preflight()
        root = self.config.install_root
        if self.server.is_installed():
            raise PreflightError(
                f"Hytale server already installed at {self.config.server_dir}. "
                "Use 'hytalectl --update' instead."
            )
        created_root = not root.exists()

        with self.locks.install_lock(root) as handle:
            if self.op is not None:
                self.op.set_lock_wait_ms(handle.wait_ms)
            self._heading("Creating installation directory")
            try:
                root.mkdir(parents=True, exist_ok=True)
                self.marker_path.touch()
            except OSError as exc:
                raise InstallError(
                    f"Failed to create installation directory {root}: {exc}"
                ) from exc

            try:
                result = self._install_steps(os_release)
            except (HytaleCtlError, OSError, KeyboardInterrupt):
                self._rollback(created_root)
                raise

            self.marker_path.unlink(missing_ok=True)

        self._print_auth_instructions(result.start_command)

        if start_server is None:
            start_server = self.confirm("Start the Hytale server now?", True)
        if start_server:
            result.server_exit_code = self._run_server()
        return result

    # ------------------------------------------------------------------
    def _install_steps(self, os_release: dict[str, str]) -> InstallResult:
        config = self.config

        self._heading("Installing required base packages")
        self.apt.update()
        self.apt.install(BASE_PACKAGES)
        self._step("apt.base-packages")

        self._heading("Setting up Adoptium JDK repository")
        codename = config.distro_version or os_release.get("VERSION_CODENAME", "")
        if not codename:
            raise InstallError("Cannot determine the distribution codename for Adoptium.")
        self.apt.add_adoptium_repository(codename)
        self.apt.update()
        self._heading(f"Installing Adoptium JDK {config.jdk_version}")
        self.apt.install_jdk(config.jdk_version)
        self._success("Adoptium JDK installed successfully")
        self._step("apt.jdk", detail=config.jdk_version)

        server_zip = self._obtain_server_zip()

        self._heading("Extracting Hytale server files")
        archive.extract(server_zip, config.install_root)
        assets = config.install_root / ASSETS_ARCHIVE
        try:
            config.server_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(assets), str(config.server_dir / ASSETS_ARCHIVE))
        except OSError as exc:
            raise InstallError(f"Failed to move {ASSETS_ARCHIVE} to server directory: {exc}") from exc
        self._success("Hytale server files extracted successfully")
        self._step("server.extract", detail=str(server_zip))

        self._heading("Configuring firewall")
        firewall_port: str | None = None
        if self.firewall.available():
            self.firewall.allow(config.firewall_port)
            firewall_port = config.firewall_port
            self._success(f"Firewall port {config.firewall_port} opened for Hytale server.")
        else:
            self._warn(
                "ufw not found, skipping firewall configuration. "
                f"Make sure to open port {config.firewall_port} manually if needed."
            )
        self._step("firewall", status="success" if firewall_port else "warning")

        unit_path: Path | None = None
        start_command = self.server.manual_start_command()
        if self.systemd.available():
            self._heading("Creating systemd service")
            self.systemd.render_unit(
                {
                    "working_directory": str(config.server_dir),
                    "exec_start": " ".join(
                        [self._java_path(), *self.server.launch_args()[1:]]
                    ),
                }
            )
            self.systemd.enable()
            unit_path = self.systemd.unit_path
            start_command = self.systemd.start_command()
            self._success("Systemd service created and enabled")
            self._step("systemd.unit", detail=str(unit_path))

        return InstallResult(
            install_root=config.install_root,
            start_command=start_command,
            systemd_unit=unit_path,
            firewall_port=firewall_port,
        )

    def _obtain_server_zip(self) -> Path:
        local_zip = self.config.local_server_zip
        if local_zip is not None:
            if not local_zip.is_file():
                raise InstallError(f"Local server archive not found: {local_zip}")
            self._info(f"Using locally provided Hytale server zip file: {local_zip}")
            self._step("server.local-zip", detail=str(local_zip))
            return local_zip

        self._heading("Downloading Hytale Downloader")
        self.downloader.ensure_present()
        self._heading("Starting Hytale Downloader")
        self._warn(
            "You will now need to authenticate with your Hytale account, "
            "please keep an eye on the terminal for prompts."
        )
        destination = self.config.install_root / SERVER_ZIP_NAME
        self.downloader.download(destination, self.config.patchline, interactive=True)
        self._step("server.download", detail=str(destination))
        return destination

    def _java_path(self) -> str:
        # systemd needs an absolute ExecStart path.
        return shutil.which(self.config.java_bin) or FALLBACK_JAVA

    def _rollback(self, created_root: bool) -> None:
        root = self.config.install_root
        if not (root.is_dir() and self.marker_path.exists()):
            return
        if created_root:
            self.console.print("[red]\\[ERROR][/red] Error occurred. Cleaning up partial installation...")
            shutil.rmtree(root, ignore_errors=True)
            self._step("rollback", status="warning", detail=str(root))
            return
        self.marker_path.unlink(missing_ok=True)
        self._warn(f"Error occurred. {root} existed before this run and was left in place.")
        self._step("rollback", status="warning", detail=f"kept {root}")

    def _run_server(self) -> int:
        self._heading("Starting Hytale server")
        exit_code = self.server.run_foreground()
        if exit_code == 130:
            self._info("Server stopped by user (Ctrl+C)")
        elif exit_code != 0:
            raise InstallError(f"Failed to start Hytale server (exit code: {exit_code}).")
        self._success("Hytale server stopped.")
        return exit_code

    def _print_auth_instructions(self, start_command: str) -> None:
        self._success("Hytale server files downloaded successfully!")
        self._info(
            "To complete the setup, run the server once and authenticate your Hytale account."
        )
        self._info(
            "After seeing the 'Hytale Server Booted!' message, run the following commands "
            "in the server console:"
        )
        for command in AUTH_COMMANDS:
            self.console.print(f"  [cyan]{command}[/cyan]")
        self._info("After completing these steps, stop the server (Ctrl+C) and run it again with:")
        self.console.print(f"  [green]{start_command}[/green]")

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


__all__ = ["Installer", "InstallResult", "MARKER_NAME", "read_os_release"]
