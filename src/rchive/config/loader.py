"""TOML configuration loading and validation.

Handles config file parsing and validation with helpful error messages.
"""

import tomllib
from pathlib import Path
from typing import Any

from ..errors import ConfigError
from .schema import (
    ARCHIVE_COMPRESSIONS,
    ArchiveConfig,
    Config,
    GlobalConfig,
    JobSpec,
    RetentionPolicy,
    SnapshotConfig,
)


def _require_table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a table")
    return value


def _get_int(data: dict[str, Any], key: str, section: str, default: int) -> int:
    value = data.get(key, default)
    # bool is an int subclass; "yes"/"no" style flags are not numbers
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{section}.{key}' must be an integer")
    if value < 0:
        raise ConfigError(f"'{section}.{key}' must not be negative")
    return value


def _get_bool(data: dict[str, Any], key: str, section: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{section}.{key}' must be true or false")
    return value


def _get_str_list(data: dict[str, Any], key: str, section: str) -> tuple[str, ...]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{section}.{key}' must be a list of strings")
    return tuple(value)


def _resolve_path(value: Any, key: str, base: Path) -> Path:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'global.{key}' must be a non-empty string")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def _parse_global(data: dict[str, Any], base: Path) -> GlobalConfig:
    """Parse global configuration from dict."""
    if "backup_dest" not in data:
        raise ConfigError("Missing required 'global.backup_dest'")

    optional_paths = {}
    for key in ("archive_dest", "log_dir", "lock_dir"):
        if data.get(key):
            optional_paths[key] = _resolve_path(data[key], key, base)

    timeout = data.get("probe_timeout", 5)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("'global.probe_timeout' must be a positive number")

    return GlobalConfig(
        backup_dest=_resolve_path(data["backup_dest"], "backup_dest", base),
        archive_dest=optional_paths.get("archive_dest"),
        log_dir=optional_paths.get("log_dir"),
        lock_dir=optional_paths.get("lock_dir"),
        ssh_key=data.get("ssh_key") or None,
        report_email=data.get("report_email") or None,
        probe_timeout=float(timeout),
        exclude=_get_str_list(data, "exclude", "global"),
        active_jobs=_get_str_list(data, "active_jobs", "global"),
        quiet=_get_bool(data, "quiet", "global", False),
        verbose=_get_bool(data, "verbose", "global", False),
    )


def _parse_archive(data: dict[str, Any]) -> ArchiveConfig:
    """Parse archive configuration from dict."""
    compression = data.get("compression", "zstd")
    if compression not in ARCHIVE_COMPRESSIONS:
        raise ConfigError(
            f"'archive.compression' must be one of {', '.join(ARCHIVE_COMPRESSIONS)}"
        )
    return ArchiveConfig(
        enabled=_get_bool(data, "enabled", "archive", False),
        compression=compression,
        retention=RetentionPolicy(
            max_age_days=_get_int(data, "retention_days", "archive", 0),
            max_count=_get_int(data, "retention_count", "archive", 0),
        ),
    )


def _parse_snapshot(data: dict[str, Any]) -> SnapshotConfig:
    """Parse snapshot configuration from dict."""
    snapshot = SnapshotConfig(
        enabled=_get_bool(data, "enabled", "snapshot", False),
        retention_count=_get_int(data, "retention_count", "snapshot", 7),
    )
    if snapshot.enabled and snapshot.retention_count < 1:
        raise ConfigError("'snapshot.retention_count' must be at least 1")
    return snapshot


def _parse_jobs(data: dict[str, Any]) -> dict[str, JobSpec]:
    """Parse the [jobs.<name>] tables; names are validated later."""
    jobs = {}
    for name, job_data in data.items():
        if not isinstance(job_data, dict):
            raise ConfigError(f"'jobs.{name}' must be a table")
        source = job_data.get("source")
        if source is not None and not isinstance(source, str):
            raise ConfigError(f"'jobs.{name}.source' must be a string")
        jobs[name] = JobSpec(
            name=name,
            source=source or None,
            exclude=_get_str_list(job_data, "exclude", f"jobs.{name}"),
        )
    return jobs


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of warnings."""
    warnings = []

    if config.archive.enabled and config.global_config.archive_dest is None:
        raise ConfigError("'global.archive_dest' is required when archiving is enabled")

    active = config.global_config.active_jobs
    if not active:
        warnings.append("No active jobs configured")

    for name in config.jobs:
        if name not in active:
            warnings.append(f"Job '{name}' is defined but not active")

    retention = config.archive.retention
    if retention.max_age_days > 0 and retention.max_count > 0:
        warnings.append(
            "Both archive retention_days and retention_count are set; "
            "retention_days takes precedence"
        )

    return warnings


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path).expanduser().resolve()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    base = path.parent
    config = Config(
        path=path,
        global_config=_parse_global(_require_table(data, "global"), base),
        archive=_parse_archive(_require_table(data, "archive")),
        snapshot=_parse_snapshot(_require_table(data, "snapshot")),
        jobs=_parse_jobs(_require_table(data, "jobs")),
    )

    warnings = _validate_config(config)

    return config, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# rchive configuration

[global]
backup_dest = "/srv/backup"
archive_dest = "/srv/archive"
# log_dir = "/var/log/rchive"
# ssh_key = "~/.ssh/backup_ed25519"
# report_email = "ops@example.com"
probe_timeout = 5
exclude = []
active_jobs = ["web_root", "local_etc"]

[archive]
enabled = true
compression = "zstd"   # zstd, gzip or xz
retention_days = 0     # takes precedence when > 0
retention_count = 5

[snapshot]
enabled = true
retention_count = 7

[jobs.web_root]
source = "deploy@web1:2222:/var/www"
exclude = ["cache/", "*.log"]

[jobs.local_etc]
source = "root@localhost:/etc"
"""
