"""UFW firewall provider."""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass

from ..errors import InstallError


class FirewallError(InstallError):
    """Raised when a firewall rule cannot be added."""


@dataclass(slots=True)
class FirewallProvider:
    """Open ports with ``ufw`` when it is installed."""

    ufw_bin: str = "ufw"

    def available(self) -> bool:
        """Return True when ufw is installed."""
        return shutil.which(self.ufw_bin) is not None

    def allow(self, port: str) -> None:
        """Allow inbound traffic on *port* (e.g. ``5520/udp``)."""
        try:
            result = subprocess.run(  # noqa: S603, S607
                [self.ufw_bin, "allow", port],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise FirewallError(f"{self.ufw_bin} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "no output"
            raise FirewallError(f"Failed to open firewall port {port}: {message}")


__all__ = ["FirewallError", "FirewallProvider"]
