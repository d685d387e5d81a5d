"""Configuration loader for hytalectl.

Values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``/etc/hytalectl/config.yml`` (or an override path).
3. Environment variables prefixed with ``HYTALECTL_``.
4. The installer's historical variables (``INSTALL_PATH``,
   ``HYTALE_SERVER_VERSION``, ``ADOPTIUM_JDK_VERSION`` ...).
5. Explicit overrides supplied programmatically (CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export HYTALECTL_SYSTEMD__SYSTEMCTL_BIN=/usr/bin/systemctl
    export HYTALECTL_PROBE_TIMEOUT=20

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` and built once per process; nothing below the CLI reads the
process environment.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "HYTALECTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

# Variables understood by the original shell installer, mapped to config keys.
LEGACY_ENV_KEYS: dict[str, str] = {
    "INSTALL_PATH": "install_root",
    "HYTALE_SERVER_VERSION": "patchline",
    "HYTALE_DOWNLOADER_URL": "downloader_url",
    "ADOPTIUM_JDK_VERSION": "jdk_version",
    "DISTRO_VERSION": "distro_version",
    "FIREWALL_PORT": "firewall_port",
    "LOCAL_HYTALE_SERVER_ZIP": "local_server_zip",
}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration settings."""

    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"unit_dir": str(self.unit_dir), "systemctl_bin": self.systemctl_bin}


@dataclass(frozen=True)
class ContainersConfig:
    """Container engine binaries consulted during supervisor detection."""

    docker_bin: str = "docker"
    podman_bin: str = "podman"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"docker_bin": self.docker_bin, "podman_bin": self.podman_bin}


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration object."""

    config_file: Path
    install_root: Path
    patchline: str
    downloader_url: str
    jdk_version: str
    distro_version: str
    firewall_port: str
    local_server_zip: Path | None
    service_name: str
    container_prefix: str
    java_bin: str
    logs_dir: Path
    templates_dir: Path
    lock_timeout: float
    probe_timeout: float
    systemd: SystemdConfig
    containers: ContainersConfig

    @property
    def server_dir(self) -> Path:
        """Directory holding the running server artifacts."""
        return self.install_root / "Server"

    @property
    def backups_dir(self) -> Path:
        """Directory holding timestamped update backups."""
        return self.install_root / "backups"

    @property
    def unit_name(self) -> str:
        """Systemd unit name for the server service."""
        return f"{self.service_name}.service"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "install_root": str(self.install_root),
            "patchline": self.patchline,
            "downloader_url": self.downloader_url,
            "jdk_version": self.jdk_version,
            "distro_version": self.distro_version,
            "firewall_port": self.firewall_port,
            "local_server_zip": str(self.local_server_zip) if self.local_server_zip else None,
            "service_name": self.service_name,
            "container_prefix": self.container_prefix,
            "java_bin": self.java_bin,
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "probe_timeout": self.probe_timeout,
            "systemd": self.systemd.to_dict(),
            "containers": self.containers.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/hytalectl/config.yml",
    "install_root": "/opt/Hytale",
    "patchline": "release",
    "downloader_url": "https://downloader.hytale.com/hytale-downloader.zip",
    "jdk_version": "25",
    "distro_version": "trixie",
    "firewall_port": "5520/udp",
    "local_server_zip": None,
    "service_name": "hytale-server",
    "container_prefix": "hytale",
    "java_bin": "java",
    "logs_dir": "/var/log/hytalectl",
    "templates_dir": "/etc/hytalectl/templates",
    "lock_timeout": 0.0,
    "probe_timeout": 10.0,
    "systemd": {
        "unit_dir": "/etc/systemd/system",
        "systemctl_bin": "systemctl",
    },
    "containers": {
        "docker_bin": "docker",
        "podman_bin": "podman",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    legacy_values = _build_legacy_overrides(resolved_env)
    if legacy_values:
        _deep_merge(merged, legacy_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    patchline = raw.get("patchline")
    if patchline is not None and not str(patchline).strip():
        raise ConfigError("patchline must be a non-empty string.")

    systemd = raw.get("systemd")
    if systemd is not None:
        systemd_map = _as_dict(systemd, "systemd")
        unknown = set(systemd_map.keys()) - {"unit_dir", "systemctl_bin"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown systemd configuration keys: {joined}.")

    containers = raw.get("containers")
    if containers is not None:
        containers_map = _as_dict(containers, "containers")
        unknown = set(containers_map.keys()) - {"docker_bin", "podman_bin"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown containers configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    local_zip_value = raw.get("local_server_zip")
    local_server_zip: Path | None = None
    if isinstance(local_zip_value, (str, Path)):
        if str(local_zip_value).strip():
            local_server_zip = _to_path(local_zip_value)
    elif local_zip_value is not None:
        raise ConfigError("local_server_zip must be a string, Path, or null.")

    systemd_mapping = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        unit_dir=_to_path(systemd_mapping.get("unit_dir", "/etc/systemd/system")),
        systemctl_bin=_str_or_default(systemd_mapping.get("systemctl_bin"), "systemctl"),
    )

    containers_mapping = _as_dict(raw.get("containers"), "containers")
    containers = ContainersConfig(
        docker_bin=_str_or_default(containers_mapping.get("docker_bin"), "docker"),
        podman_bin=_str_or_default(containers_mapping.get("podman_bin"), "podman"),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        install_root=_to_path(raw.get("install_root")),
        patchline=_str_or_default(raw.get("patchline"), "release"),
        downloader_url=_str_or_default(raw.get("downloader_url"), str(DEFAULTS["downloader_url"])),
        jdk_version=_str_or_default(raw.get("jdk_version"), "25"),
        distro_version=_optional_str(raw.get("distro_version")),
        firewall_port=_str_or_default(raw.get("firewall_port"), "5520/udp"),
        local_server_zip=local_server_zip,
        service_name=_str_or_default(raw.get("service_name"), "hytale-server"),
        container_prefix=_str_or_default(raw.get("container_prefix"), "hytale"),
        java_bin=_str_or_default(raw.get("java_bin"), "java"),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        lock_timeout=_expect_non_negative_float(
            raw.get("lock_timeout"), "lock_timeout", default=0.0
        ),
        probe_timeout=_expect_positive_float(
            raw.get("probe_timeout"), "probe_timeout", default=10.0
        ),
        systemd=systemd,
        containers=containers,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _build_legacy_overrides(env: Mapping[str, str]) -> dict[str, object]:
    # Kept as raw strings: "25" is a JDK version, not an integer.
    overrides: dict[str, object] = {}
    for legacy_key, config_key in LEGACY_ENV_KEYS.items():
        if legacy_key in env:
            overrides[config_key] = env[legacy_key]
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _optional_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _str_or_default(value: object, default: str) -> str:
    # An empty env value is coerced to None by YAML; treat it as unset.
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_float(value: object, label: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")


def _expect_positive_float(value: object | None, label: str, *, default: float) -> float:
    if value is None:
        return float(default)
    numeric = _expect_float(value, label)
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _expect_non_negative_float(value: object | None, label: str, *, default: float) -> float:
    if value is None:
        return float(default)
    numeric = _expect_float(value, label)
    if numeric < 0:
        raise ConfigError(f"{label} must be non-negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "ContainersConfig",
    "SystemdConfig",
    "load_config",
]
