"""Configuration helpers for SwitchBack."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_LOCAL_CONFIG = PROJECT_ROOT / "config" / "local.yml"


class SettingsError(ValueError):
    """Raised when local.yml contains values that cannot be used."""


@dataclass(slots=True)
class ConfigPaths:
    """Paths used by the application."""

    inventory: Path
    drop_dir: Path
    repository_root: Path
    workdir: Path
    summary_dir: Path


@dataclass(slots=True)
class InventoryDefaults:
    """Defaults every inventory file starts from."""

    community: str = "public"
    interface: str | None = None


@dataclass(slots=True)
class SnmpSettings:
    timeout: float = 30.0
    retries: int = 2
    port: int = 161


@dataclass(slots=True)
class TransferSettings:
    timeout: float = 30.0
    poll_interval: float = 0.5
    settle_time: float = 5.0


@dataclass(slots=True)
class BackupSettings:
    workers: int = 4
    nvram_write: bool = True


@dataclass(slots=True)
class Settings:
    """Everything the backup run needs, resolved from local.yml and defaults."""

    paths: ConfigPaths
    inventory: InventoryDefaults = field(default_factory=InventoryDefaults)
    snmp: SnmpSettings = field(default_factory=SnmpSettings)
    transfer: TransferSettings = field(default_factory=TransferSettings)
    backup: BackupSettings = field(default_factory=BackupSettings)
    source: Path | None = None


DEFAULT_PATHS = ConfigPaths(
    inventory=PROJECT_ROOT / "config" / "switches",
    drop_dir=Path("/srv/tftp"),
    repository_root=PROJECT_ROOT / "repository",
    workdir=PROJECT_ROOT / "checkout",
    summary_dir=PROJECT_ROOT / "summary",
)


def load_local_config(
    config_path: str | Path | None = None, logger: logging.Logger | None = None
) -> Mapping[str, Any] | None:
    """Load local.yml if it exists and return the mapping."""

    config_file = Path(config_path) if config_path else DEFAULT_LOCAL_CONFIG
    if not config_file.is_absolute():
        config_file = PROJECT_ROOT / config_file

    if logger:
        logger.debug("loading local config from %s", config_file)

    if not config_file.exists():
        if logger:
            logger.debug("local config not found at %s", config_file)
        return None

    try:
        with config_file.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        if logger:
            logger.warning('unable to read local config file=%s reason="%s"', config_file, exc)
        return None

    return data if isinstance(data, Mapping) else None


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SettingsError(f"local.yml: section '{name}' must be a mapping.")
    return value


def _path(section: Mapping[str, Any], key: str, default: Path, context: str) -> Path:
    value = section.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise SettingsError(f"{context}: '{key}' must be a string path.")
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def _positive_number(section: Mapping[str, Any], key: str, default: float, context: str) -> float:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SettingsError(f"{context}: '{key}' must be a number.")
    if value <= 0:
        raise SettingsError(f"{context}: '{key}' must be greater than zero.")
    return float(value)


def _integer(section: Mapping[str, Any], key: str, default: int, context: str, minimum: int = 0) -> int:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise SettingsError(f"{context}: '{key}' must be an integer.")
    if value < minimum:
        raise SettingsError(f"{context}: '{key}' must be at least {minimum}.")
    return value


def _optional_string(section: Mapping[str, Any], key: str, default: str | None, context: str) -> str | None:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise SettingsError(f"{context}: '{key}' must be a non-empty string.")
    return value.strip()


def _boolean(section: Mapping[str, Any], key: str, default: bool, context: str) -> bool:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise SettingsError(f"{context}: '{key}' must be true or false.")
    return value


def parse_settings(raw: Mapping[str, Any] | None, source: Path | None = None) -> Settings:
    """Build validated settings from a local.yml mapping (or defaults when None)."""

    raw = raw or {}

    paths_raw = _section(raw, "paths")
    paths = ConfigPaths(
        inventory=_path(paths_raw, "inventory", DEFAULT_PATHS.inventory, "paths"),
        drop_dir=_path(paths_raw, "drop_dir", DEFAULT_PATHS.drop_dir, "paths"),
        repository_root=_path(paths_raw, "repository_root", DEFAULT_PATHS.repository_root, "paths"),
        workdir=_path(paths_raw, "workdir", DEFAULT_PATHS.workdir, "paths"),
        summary_dir=_path(paths_raw, "summary_dir", DEFAULT_PATHS.summary_dir, "paths"),
    )

    inventory_raw = _section(raw, "inventory")
    inventory = InventoryDefaults(
        community=_optional_string(inventory_raw, "community", "public", "inventory") or "public",
        interface=_optional_string(inventory_raw, "interface", None, "inventory"),
    )

    snmp_raw = _section(raw, "snmp")
    port = _integer(snmp_raw, "port", 161, "snmp", minimum=1)
    if port > 65535:
        raise SettingsError("snmp: 'port' must be between 1 and 65535.")
    snmp = SnmpSettings(
        timeout=_positive_number(snmp_raw, "timeout", 30.0, "snmp"),
        retries=_integer(snmp_raw, "retries", 2, "snmp"),
        port=port,
    )

    transfer_raw = _section(raw, "transfer")
    transfer = TransferSettings(
        timeout=_positive_number(transfer_raw, "timeout", 30.0, "transfer"),
        poll_interval=_positive_number(transfer_raw, "poll_interval", 0.5, "transfer"),
        settle_time=_positive_number(transfer_raw, "settle_time", 5.0, "transfer"),
    )

    backup_raw = _section(raw, "backup")
    backup = BackupSettings(
        workers=_integer(backup_raw, "workers", 4, "backup", minimum=1),
        nvram_write=_boolean(backup_raw, "nvram_write", True, "backup"),
    )

    return Settings(
        paths=paths, inventory=inventory, snmp=snmp, transfer=transfer, backup=backup, source=source
    )


def load_settings(config_path: str | Path | None = None, logger: logging.Logger | None = None) -> Settings:
    """Load local.yml and return validated settings."""

    config_file = Path(config_path) if config_path else DEFAULT_LOCAL_CONFIG
    raw = load_local_config(config_file, logger)
    return parse_settings(raw, source=config_file if raw is not None else None)


def _probe_directory(path: Path) -> tuple[bool, str | None]:
    """Try to create and write to the directory, returning success and reason."""

    try:
        path.mkdir(parents=True, exist_ok=True)
        test_file = path / ".write-test"
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("probe")
        test_file.unlink(missing_ok=True)
        return True, None
    except OSError as exc:
        return False, str(exc)


def verify_directories(paths: ConfigPaths, logger: logging.Logger) -> None:
    """Ensure the working directories exist and are writable.

    The inventory directory must already exist; the others are created on
    demand. Raises ``SettingsError`` naming the first unusable directory.
    """

    if not paths.inventory.is_dir():
        raise SettingsError(f"Inventory directory not found: {paths.inventory}")

    for label, candidate in (
        ("drop_dir", paths.drop_dir),
        ("repository_root", paths.repository_root),
        ("workdir", paths.workdir),
    ):
        ok, reason = _probe_directory(candidate)
        if not ok:
            logger.error('%s path=%s reason="%s"', label, candidate, reason or "unavailable")
            raise SettingsError(f"Directory '{label}' is not usable: {candidate}")
        logger.debug("%s path=%s", label, candidate)
