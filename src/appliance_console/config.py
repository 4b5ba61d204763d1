"""Configuration loader for appliance_console.

Configuration values are read from multiple sources, later sources winning:

1. Built-in defaults.
2. ``/etc/appliance-console/config.yml`` (or an override path).
3. Environment variables prefixed with ``APPLIANCE_CONSOLE_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export APPLIANCE_CONSOLE_SERVICES__APPLICATION=evmserverd
    export APPLIANCE_CONSOLE_BINARIES__SYSTEMCTL=/usr/bin/systemctl

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml


ENV_PREFIX = "APPLIANCE_CONSOLE_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ServicesConfig:
    """Names of the OS services the console starts, stops and restarts."""

    network: str = "network"
    application: str = "evmserverd"
    database: str = "postgresql"
    httpd: str = "httpd"
    repmgrd: str = "repmgr10"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "network": self.network,
            "application": self.application,
            "database": self.database,
            "httpd": self.httpd,
            "repmgrd": self.repmgrd,
        }


@dataclass(frozen=True)
class BinariesConfig:
    """Executables spawned by the default collaborators."""

    systemctl: str = "systemctl"
    hostnamectl: str = "hostnamectl"
    lsblk: str = "lsblk"
    scp: str = "scp"
    sshpass: str = "sshpass"
    ipa_client_install: str = "ipa-client-install"
    getcert: str = "getcert"
    repmgr: str = "repmgr"
    psql: str = "psql"
    parted: str = "parted"
    mkfs: str = "mkfs.xfs"
    mount: str = "mount"
    initdb: str = "initdb"
    runuser: str = "runuser"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "systemctl": self.systemctl,
            "hostnamectl": self.hostnamectl,
            "lsblk": self.lsblk,
            "scp": self.scp,
            "sshpass": self.sshpass,
            "ipa_client_install": self.ipa_client_install,
            "getcert": self.getcert,
            "repmgr": self.repmgr,
            "psql": self.psql,
            "parted": self.parted,
            "mkfs": self.mkfs,
            "mount": self.mount,
            "initdb": self.initdb,
            "runuser": self.runuser,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for appliance_console."""

    config_file: Path
    logs_dir: Path
    vmdb_root: Path
    hosts_file: Path
    hostname_file: Path
    fstab_file: Path
    key_file: Path
    database_yml: Path
    repmgr_config: Path
    postgres_data_dir: Path
    postgres_mount_point: Path
    temp_mount_point: Path
    log_mount_point: Path
    ipa_config_file: Path
    extauth_settings_file: Path
    certs_dir: Path
    services: ServicesConfig
    binaries: BinariesConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "vmdb_root": str(self.vmdb_root),
            "hosts_file": str(self.hosts_file),
            "hostname_file": str(self.hostname_file),
            "fstab_file": str(self.fstab_file),
            "key_file": str(self.key_file),
            "database_yml": str(self.database_yml),
            "repmgr_config": str(self.repmgr_config),
            "postgres_data_dir": str(self.postgres_data_dir),
            "postgres_mount_point": str(self.postgres_mount_point),
            "temp_mount_point": str(self.temp_mount_point),
            "log_mount_point": str(self.log_mount_point),
            "ipa_config_file": str(self.ipa_config_file),
            "extauth_settings_file": str(self.extauth_settings_file),
            "certs_dir": str(self.certs_dir),
            "services": self.services.to_dict(),
            "binaries": self.binaries.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/appliance-console/config.yml",
    "logs_dir": "/var/log/appliance-console",
    "vmdb_root": "/var/www/miq/vmdb",
    "hosts_file": "/etc/hosts",
    "hostname_file": "/etc/hostname",
    "fstab_file": "/etc/fstab",
    "key_file": None,  # derived from vmdb_root when absent
    "database_yml": None,  # derived from vmdb_root when absent
    "repmgr_config": "/etc/repmgr/10/repmgr.conf",
    "postgres_data_dir": "/var/lib/pgsql/data",
    "postgres_mount_point": "/var/lib/pgsql",
    "temp_mount_point": "/var/www/miq_tmp",
    "log_mount_point": "/var/www/miq/vmdb/log",
    "ipa_config_file": "/etc/ipa/default.conf",
    "extauth_settings_file": None,  # derived from vmdb_root when absent
    "certs_dir": None,  # derived from vmdb_root when absent
    "services": ServicesConfig().to_dict(),
    "binaries": BinariesConfig().to_dict(),
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
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, known in (
        ("services", set(ServicesConfig().to_dict())),
        ("binaries", set(BinariesConfig().to_dict())),
    ):
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - known
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")
        for key, value in mapping.items():
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"{section}.{key} must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    vmdb_root = _to_path(raw.get("vmdb_root"))

    services = ServicesConfig(**cast(dict[str, str], _as_dict(raw.get("services"), "services")))
    binaries = BinariesConfig(**cast(dict[str, str], _as_dict(raw.get("binaries"), "binaries")))

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        vmdb_root=vmdb_root,
        hosts_file=_to_path(raw.get("hosts_file")),
        hostname_file=_to_path(raw.get("hostname_file")),
        fstab_file=_to_path(raw.get("fstab_file")),
        key_file=_derived_path(raw, "key_file", vmdb_root / "certs" / "v2_key"),
        database_yml=_derived_path(raw, "database_yml", vmdb_root / "config" / "database.yml"),
        repmgr_config=_to_path(raw.get("repmgr_config")),
        postgres_data_dir=_to_path(raw.get("postgres_data_dir")),
        postgres_mount_point=_to_path(raw.get("postgres_mount_point")),
        temp_mount_point=_to_path(raw.get("temp_mount_point")),
        log_mount_point=_to_path(raw.get("log_mount_point")),
        ipa_config_file=_to_path(raw.get("ipa_config_file")),
        extauth_settings_file=_derived_path(
            raw,
            "extauth_settings_file",
            vmdb_root / "config" / "settings.local.yml",
        ),
        certs_dir=_derived_path(raw, "certs_dir", vmdb_root / "certs"),
        services=services,
        binaries=binaries,
    )


def _derived_path(raw: Mapping[str, object], key: str, default: Path) -> Path:
    value = raw.get(key)
    return _to_path(value) if value else default


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


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


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
    "BinariesConfig",
    "ConfigError",
    "ServicesConfig",
    "load_config",
]
