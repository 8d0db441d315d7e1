"""Data models for jobs and run results."""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

LOCAL_HOST = "localhost"
DEFAULT_SSH_PORT = 22
LIVE_DIR_NAME = "Live"
SNAPSHOT_PREFIX = "Snapshot."


class JobStatus(Enum):
    """Classified outcome of one job."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ArtifactStatus(Enum):
    """Outcome of an archive or snapshot step."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    DISABLED = "DISABLED"


class HostStatus(Enum):
    """Aggregated outcome of a host, and of the whole run."""

    SUCCESS = "SUCCESS"
    FAILURE = "ERROR"


@dataclass(frozen=True)
class Job:
    """One validated source-to-destination synchronization task."""

    name: str
    host: str
    remote_path: str
    user: Optional[str] = None
    port: int = DEFAULT_SSH_PORT
    excludes: tuple[str, ...] = ()
    source: str = ""

    @property
    def is_local(self) -> bool:
        return self.host == LOCAL_HOST

    @property
    def archive_key(self) -> str:
        """Basename of the source, shared by all archives of this job."""
        return Path(self.remote_path).name or self.name

    def live_dir(self, backup_root: Path) -> Path:
        return Path(backup_root) / self.host / LIVE_DIR_NAME

    def destination(self, backup_root: Path) -> Path:
        """Where --relative puts the mirror of ``remote_path``."""
        return self.live_dir(backup_root) / self.remote_path.lstrip("/")

    def rsync_source(self) -> str:
        if self.is_local:
            return self.remote_path
        if self.user:
            return f"{self.user}@{self.host}:{self.remote_path}"
        return f"{self.host}:{self.remote_path}"


@dataclass(frozen=True)
class HostGroup:
    """A host and the jobs whose source resolves to it."""

    host: str
    jobs: tuple[Job, ...]

    @property
    def port(self) -> int:
        """Port of the first job, used as representative for the probe."""
        return self.jobs[0].port if self.jobs else DEFAULT_SSH_PORT

    @property
    def is_local(self) -> bool:
        return self.host == LOCAL_HOST


@dataclass(frozen=True)
class ErrorMatch:
    """An error signature found in rsync output."""

    signature: str
    line: str


@dataclass
class ArchiveResult:
    """Result of archiving one job's destination."""

    status: ArtifactStatus
    path: Optional[Path] = None
    size: int = 0
    message: str = ""
    deleted: list[Path] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status is ArtifactStatus.FAILED


@dataclass
class SnapshotResult:
    """Result of rotating a host's snapshots."""

    status: ArtifactStatus
    path: Optional[Path] = None
    message: str = ""
    removed: list[Path] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status is ArtifactStatus.FAILED


@dataclass
class JobResult:
    """Result of running (or skipping) one job."""

    job: Job
    exit_code: Optional[int] = None
    status: Optional[JobStatus] = None
    errors: list[ErrorMatch] = field(default_factory=list)
    detail: str = ""
    destination: Optional[Path] = None
    output: str = ""
    duration_seconds: float = 0.0
    archive: Optional[ArchiveResult] = None

    @property
    def name(self) -> str:
        return self.job.name

    @property
    def failed(self) -> bool:
        if self.status is not JobStatus.SUCCESS:
            return True
        return self.archive is not None and self.archive.failed

    @property
    def error_summary(self) -> str:
        if self.errors:
            return "; ".join(f"{m.signature}: {m.line}" for m in self.errors)
        return self.detail


@dataclass
class HostResult:
    """Complete outcome of one host, handed to the reporter."""

    host: str
    job_results: list[JobResult] = field(default_factory=list)
    snapshot: Optional[SnapshotResult] = None
    probe_detail: str = ""
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0

    @property
    def status(self) -> HostStatus:
        if any(r.failed for r in self.job_results):
            return HostStatus.FAILURE
        if self.snapshot is not None and self.snapshot.failed:
            return HostStatus.FAILURE
        return HostStatus.SUCCESS

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at


@dataclass
class RunResult:
    """All host results of one run."""

    hosts: list[HostResult] = field(default_factory=list)
    dry_run: bool = False
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0

    @property
    def status(self) -> HostStatus:
        if any(h.status is HostStatus.FAILURE for h in self.hosts):
            return HostStatus.FAILURE
        return HostStatus.SUCCESS

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at
