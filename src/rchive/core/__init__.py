"""Core backup orchestration for rchive.

Jobs are validated and grouped by host, each host is probed, its jobs are
mirrored in parallel with rsync, outcomes are classified, and successful
jobs are archived before the host's snapshots are rotated.
"""

from .archive import ArchiveRetentionManager
from .classifier import classify
from .executor import JobExecutor
from .lock import RunLock, lock_key_for
from .probe import ConnectivityProbe
from .registry import load_jobs, parse_source
from .scheduler import HostScheduler
from .snapshot import SnapshotRotator

__all__ = [
    "ArchiveRetentionManager",
    "ConnectivityProbe",
    "HostScheduler",
    "JobExecutor",
    "RunLock",
    "SnapshotRotator",
    "classify",
    "load_jobs",
    "lock_key_for",
    "parse_source",
]
