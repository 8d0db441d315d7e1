"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration with sensible defaults. All
sections are frozen: a loaded configuration is an immutable snapshot for the
whole run and is passed explicitly to every component.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

ARCHIVE_COMPRESSIONS = ("zstd", "gzip", "xz")


@dataclass(frozen=True)
class RetentionPolicy:
    """Archive retention policy.

    Attributes:
        max_age_days: Delete archives older than this many days (0 = off)
        max_count: Keep at most this many archives per job (0 = off)

    Age based retention takes precedence when both are non-zero.
    """

    max_age_days: int = 0
    max_count: int = 0

    @property
    def mode(self) -> Optional[str]:
        """Return "age", "count" or None when nothing is pruned."""
        if self.max_age_days > 0:
            return "age"
        if self.max_count > 0:
            return "count"
        return None


@dataclass(frozen=True)
class ArchiveConfig:
    """Per-job archive settings.

    Attributes:
        enabled: Create a compressed archive of each successful job
        compression: One of "zstd", "gzip" or "xz"
        retention: Which old archives to prune after a new one is written
    """

    enabled: bool = False
    compression: str = "zstd"
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)


@dataclass(frozen=True)
class SnapshotConfig:
    """Host-level snapshot settings.

    Attributes:
        enabled: Rotate hard-link snapshots of each host's Live directory
        retention_count: Number of Snapshot.N directories kept per host
    """

    enabled: bool = False
    retention_count: int = 7


@dataclass(frozen=True)
class JobSpec:
    """A job as declared in the configuration, before validation."""

    name: str
    source: Optional[str] = None
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class GlobalConfig:
    """Global configuration settings.

    Attributes:
        backup_dest: Root of the mirrored Live trees and snapshots
        archive_dest: Root of the per-job archives
        log_dir: Directory for the daily log file (None for no file logging)
        lock_dir: Directory holding the run lock (None for the temp dir)
        ssh_key: Identity file handed to ssh
        report_email: Recipient of the per-host reports (None disables mail)
        probe_timeout: Seconds to wait for the connectivity probe
        exclude: Run-wide exclude patterns appended to every job
        active_jobs: Job identifiers to run, in order
        quiet: Suppress non-essential output
        verbose: Enable verbose output
    """

    backup_dest: Path
    archive_dest: Optional[Path] = None
    log_dir: Optional[Path] = None
    lock_dir: Optional[Path] = None
    ssh_key: Optional[str] = None
    report_email: Optional[str] = None
    probe_timeout: float = 5.0
    exclude: tuple[str, ...] = ()
    active_jobs: tuple[str, ...] = ()
    quiet: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class Config:
    """Root configuration object.

    Attributes:
        path: File the configuration was loaded from
        global_config: Global settings
        archive: Archive creation and retention
        snapshot: Snapshot rotation
        jobs: Declared jobs by identifier
    """

    path: Path
    global_config: GlobalConfig
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    jobs: dict[str, JobSpec] = field(default_factory=dict)

    def get_active_specs(self) -> list[JobSpec]:
        """Return the active jobs in declaration order.

        An active name without a [jobs.<name>] table yields a spec without a
        source so that job validation can reject it.
        """
        return [
            self.jobs.get(name, JobSpec(name=name))
            for name in self.global_config.active_jobs
        ]


@dataclass(frozen=True)
class RunOptions:
    """Per-invocation options layered on top of the configuration.

    Attributes:
        dry_run: Invoke rsync with --dry-run and skip archives/snapshots
        excludes: Exclude patterns added on the command line for this run
        send_email: Whether host reports are mailed
    """

    dry_run: bool = False
    excludes: tuple[str, ...] = ()
    send_email: bool = True
