"""Pytest configuration and shared fixtures."""

import logging
import os
import stat
import time
from pathlib import Path

import pytest

from rchive.config.schema import (
    ArchiveConfig,
    Config,
    GlobalConfig,
    RetentionPolicy,
    RunOptions,
    SnapshotConfig,
)
from rchive.core.models import Job


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo create_logger() so caplog sees records in every test."""
    yield
    package_logger = logging.getLogger("rchive")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.INFO)


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
[global]
backup_dest = "/srv/backup"
archive_dest = "/srv/archive"
log_dir = "logs"
ssh_key = "~/.ssh/backup_ed25519"
report_email = "ops@example.com"
probe_timeout = 3
exclude = ["*.swp"]
active_jobs = ["web_root", "db_dumps", "local_etc"]

[archive]
enabled = true
compression = "gzip"
retention_days = 0
retention_count = 5

[snapshot]
enabled = true
retention_count = 4

[jobs.web_root]
source = "deploy@web1:2222:/var/www/"
exclude = ["cache/", "*.log"]

[jobs.db_dumps]
source = "backup@db1:/var/backups/db"

[jobs.local_etc]
source = "root@localhost:/etc"
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[global]
backup_dest = "/srv/backup"
active_jobs = ["home"]

[jobs.home]
source = "alice@nas:/home/alice"
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path


@pytest.fixture
def make_config(tmp_path):
    """Factory for in-memory configurations rooted in tmp_path."""

    def _make(
        archive=False,
        snapshot=False,
        retention=RetentionPolicy(),
        snapshot_count=3,
        exclude=(),
        compression="gzip",
    ):
        return Config(
            path=tmp_path / "rchive.toml",
            global_config=GlobalConfig(
                backup_dest=tmp_path / "backup",
                archive_dest=tmp_path / "archive",
                lock_dir=tmp_path / "locks",
                probe_timeout=1,
                exclude=tuple(exclude),
            ),
            archive=ArchiveConfig(enabled=archive, compression=compression, retention=retention),
            snapshot=SnapshotConfig(enabled=snapshot, retention_count=snapshot_count),
        )

    return _make


@pytest.fixture
def dry_run_options():
    return RunOptions(dry_run=True)


def make_job(name="web", host="web1", path="/var/www", user="deploy", port=22, excludes=()):
    """Build a Job without going through the registry."""
    return Job(
        name=name,
        host=host,
        remote_path=path,
        user=user,
        port=port,
        excludes=tuple(excludes),
        source=f"{user}@{host}:{path}",
    )


@pytest.fixture
def fake_rsync(tmp_path):
    """Factory writing a shell script that stands in for rsync.

    The script prints ``output`` and exits with ``exit_code``; its arguments
    are appended to ``args.log`` next to it.
    """

    def _make(output="", exit_code=0, sleep=0):
        script = tmp_path / f"fake-rsync-{exit_code}-{abs(hash(output))}"
        payload = tmp_path / f"{script.name}.out"
        payload.write_text(output)
        lines = [
            "#!/bin/sh",
            f'echo "$@" >> "{tmp_path}/args.log"',
            f'cat "{payload}"',
        ]
        if sleep:
            # exec so that terminating the child also closes its stdout
            lines.append(f"exec sleep {sleep}")
        else:
            lines.append(f"exit {exit_code}")
        script.write_text("\n".join(lines) + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


def populate(directory: Path, files: dict[str, str]) -> None:
    """Create files (relative path -> content) below directory."""
    for rel, content in files.items():
        path = directory / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def set_mtime(path: Path, seconds_ago: float) -> None:
    stamp = time.time() - seconds_ago
    os.utime(path, (stamp, stamp))
