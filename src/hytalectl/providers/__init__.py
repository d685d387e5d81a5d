"""Provider interfaces for hytalectl."""
from __future__ import annotations

from .apt import AptError, AptProvider
from .containers import ContainerError, ContainerProvider
from .downloader import DownloaderProvider
from .firewall import FirewallError, FirewallProvider
from .server import ServerProvider
from .systemd import SystemdError, SystemdProvider

__all__ = [
    "AptError",
    "AptProvider",
    "ContainerError",
    "ContainerProvider",
    "DownloaderProvider",
    "FirewallError",
    "FirewallProvider",
    "ServerProvider",
    "SystemdError",
    "SystemdProvider",
]
