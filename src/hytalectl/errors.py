"""Exception hierarchy shared by the install and update workflows."""
from __future__ import annotations


class HytaleCtlError(RuntimeError):
    """Base class for failures raised by hytalectl workflows."""


class NotInstalledError(HytaleCtlError):
    """Raised when the installation root does not hold a server."""


class PreflightError(HytaleCtlError):
    """Raised when the host does not satisfy installer requirements."""


class InstallError(HytaleCtlError):
    """Raised when an installation step fails."""


class FetchFailedError(HytaleCtlError):
    """Raised when a download or downloader invocation fails."""


class ExtractFailedError(HytaleCtlError):
    """Raised when an archive cannot be extracted."""


class VersionProbeError(HytaleCtlError):
    """Raised when the latest version cannot be parsed from downloader output."""

    def __init__(self, message: str, *, output: str = "") -> None:
        """Keep the raw downloader *output* for diagnostics."""
        super().__init__(message)
        self.output = output


class BackupError(HytaleCtlError):
    """Raised when backup operations fail."""


class SupervisorError(HytaleCtlError):
    """Raised when a supervisor backend fails to stop or start the server."""


class ServerBusyError(HytaleCtlError):
    """Raised when the server is running and the operator refuses to stop it."""


class OperatorCancelledError(HytaleCtlError):
    """Raised when the operator declines a confirmation prompt."""


__all__ = [
    "BackupError",
    "ExtractFailedError",
    "FetchFailedError",
    "HytaleCtlError",
    "InstallError",
    "NotInstalledError",
    "OperatorCancelledError",
    "PreflightError",
    "ServerBusyError",
    "SupervisorError",
    "VersionProbeError",
]
