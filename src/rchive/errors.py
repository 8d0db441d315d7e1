"""Exception hierarchy for rchive.

Configuration and lock errors are fatal and abort the run before any host is
touched. Connectivity, transfer, archive and snapshot errors are scoped to a
host or job; they end up as statuses in the run result instead of
propagating out of the scheduler.
"""


class RchiveError(Exception):
    """Base class for all rchive errors."""


class ConfigError(RchiveError):
    """Configuration loading or validation error."""


class LockError(RchiveError):
    """The run lock could not be acquired or released."""


class AlreadyRunningError(LockError):
    """Another instance holds the lock for this configuration."""

    def __init__(self, key: str, pid: int) -> None:
        super().__init__(
            f"Another instance is already running for '{key}' with PID {pid}"
        )
        self.key = key
        self.pid = pid


class ConnectivityError(RchiveError):
    """Host could not be reached on its probed port."""


class TransferError(RchiveError):
    """rsync could not be started for a job."""


class ArchiveError(RchiveError):
    """Archive creation or retention failed."""


class SnapshotError(RchiveError):
    """Snapshot rotation or cloning failed."""


class InterruptedRunError(RchiveError):
    """The run was interrupted by a signal; children have been cancelled."""
