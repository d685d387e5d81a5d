"""Detect and control whichever supervisor runs the server.

Three backends may own a running server: systemd, Docker or Podman. They are
always consulted in that order. Any backend whose tool is missing counts as
"not running". When more than one backend reports the server the first match
wins and a warning names every match.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from .providers.containers import ContainerProvider
from .providers.server import ServerProvider
from .providers.systemd import SystemdProvider

LOGGER = logging.getLogger(__name__)


class SupervisorKind(StrEnum):
    """Kinds of supervisor state."""

    NONE = "none-running"
    SYSTEMD = "systemd-managed"
    CONTAINER = "container-managed"


@dataclass(frozen=True, slots=True)
class SupervisorState:
    """Which backend, if any, currently runs the server."""

    kind: SupervisorKind
    engine: str | None = None
    name: str | None = None

    @classmethod
    def none_running(cls) -> SupervisorState:
        """Return the idle state."""
        return cls(SupervisorKind.NONE)

    @property
    def running(self) -> bool:
        """Return True when some backend runs the server."""
        return self.kind is not SupervisorKind.NONE

    def describe(self) -> str:
        """Human readable label for prompts and logs."""
        if self.kind is SupervisorKind.SYSTEMD:
            return f"systemd unit {self.name}"
        if self.kind is SupervisorKind.CONTAINER:
            return f"{self.engine} container {self.name}"
        return "not running"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {"kind": self.kind.value, "engine": self.engine, "name": self.name}


class SupervisorAdapter:
    """Uniform detect/stop/start-hint surface over the supervisor backends."""

    def __init__(
        self,
        *,
        systemd: SystemdProvider,
        containers: Sequence[ContainerProvider],
        server: ServerProvider,
        container_prefix: str = "hytale",
    ) -> None:
        """Wire the adapter to its backends, in detection order."""
        self.systemd = systemd
        self.containers = list(containers)
        self.server = server
        self.container_prefix = container_prefix

    def detect_running(self, service_name_hint: str | None = None) -> SupervisorState:
        """Return the state of the first backend that reports the server running."""
        prefix = service_name_hint or self.container_prefix
        matches: list[SupervisorState] = []

        if self.systemd.available() and self.systemd.is_active():
            matches.append(SupervisorState(SupervisorKind.SYSTEMD, name=self.systemd.unit_name))

        for provider in self.containers:
            if not provider.available():
                continue
            name = provider.find_running(prefix)
            if name:
                matches.append(
                    SupervisorState(SupervisorKind.CONTAINER, engine=provider.engine, name=name)
                )

        if not matches:
            return SupervisorState.none_running()
        if len(matches) > 1:
            LOGGER.warning(
                "Server reported running under multiple supervisors (%s); acting on %s only.",
                ", ".join(state.describe() for state in matches),
                matches[0].describe(),
            )
        return matches[0]

    def stop(self, state: SupervisorState) -> None:
        """Stop the server through the backend recorded in *state*."""
        if state.kind is SupervisorKind.SYSTEMD:
            self.systemd.stop()
        elif state.kind is SupervisorKind.CONTAINER:
            self._container(state.engine).stop(str(state.name))

    def suggested_start_command(self, state: SupervisorState) -> str:
        """Return the command an operator runs to bring the server back."""
        if state.kind is SupervisorKind.SYSTEMD:
            return self.systemd.start_command()
        if state.kind is SupervisorKind.CONTAINER:
            return self._container(state.engine).start_command(str(state.name))
        if self.systemd.available() and self.systemd.unit_exists():
            return self.systemd.start_command()
        return self.server.manual_start_command()

    def _container(self, engine: str | None) -> ContainerProvider:
        for provider in self.containers:
            if provider.engine == engine:
                return provider
        raise ValueError(f"Unknown container engine: {engine!r}")


__all__ = ["SupervisorAdapter", "SupervisorKind", "SupervisorState"]
