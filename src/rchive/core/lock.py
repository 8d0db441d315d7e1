"""Run lock: one running instance per configuration.

The lock is a pid file named after a key derived from the configuration file.
Reading, checking and rewriting the pid file happens under a FileLock on a
guard file so two instances starting at the same moment cannot both win.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from ..errors import AlreadyRunningError, LockError

logger = logging.getLogger(__name__)

GUARD_TIMEOUT = 10


def lock_key_for(config_path: Path | str) -> str:
    """Derive the lock key from the identity of a configuration file."""
    resolved = str(Path(config_path).expanduser().resolve())
    return "rchive-" + hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]


def pid_alive(pid: int) -> bool:
    """Return True if a process with ``pid`` exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    return True


class RunLock:
    """Exclusive per-configuration run lock.

    Usage::

        with RunLock(lock_key_for(config_path)):
            ...

    Any recorded pid that is still alive, including our own, makes
    :meth:`acquire` raise :class:`AlreadyRunningError`.
    """

    def __init__(self, key: str, lock_dir: Optional[Path | str] = None) -> None:
        self.key = key
        self.lock_dir = Path(lock_dir) if lock_dir else Path(tempfile.gettempdir())
        self.pid_path = self.lock_dir / f"{key}.pid"
        self.guard = FileLock(str(self.lock_dir / f"{key}.guard"), timeout=GUARD_TIMEOUT)
        self.pid: Optional[int] = None

    def __repr__(self) -> str:
        return f"RunLock({self.pid_path})"

    def _read_pid(self) -> Optional[int]:
        try:
            content = self.pid_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        try:
            return int(content)
        except ValueError:
            logger.warning("Unparsable lock record in %s: %r", self.pid_path, content)
            return 0

    def acquire(self) -> "RunLock":
        """Record our pid under the key or fail if a live owner exists."""
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            with self.guard:
                recorded = self._read_pid()
                if recorded is not None:
                    if pid_alive(recorded):
                        raise AlreadyRunningError(self.key, recorded)
                    logger.warning(
                        "Found a stale lock file %s (PID %s). Reclaiming it.",
                        self.pid_path,
                        recorded,
                    )
                pid = os.getpid()
                self.pid_path.write_text(f"{pid}\n", encoding="utf-8")
                self.pid = pid
        except Timeout as e:
            raise LockError(f"Timed out waiting for lock guard of {self.pid_path}") from e
        except OSError as e:
            raise LockError(f"Cannot write lock file {self.pid_path}: {e}") from e
        logger.debug("Acquired run lock %s (PID %d)", self.pid_path, self.pid)
        return self

    def release(self) -> None:
        """Remove the pid file if it still belongs to us."""
        if self.pid is None:
            return
        try:
            with self.guard:
                if self._read_pid() == self.pid:
                    self.pid_path.unlink(missing_ok=True)
                    logger.debug("Released run lock %s", self.pid_path)
                else:
                    logger.warning("Lock file %s no longer ours, leaving it", self.pid_path)
        except (Timeout, OSError) as e:
            logger.error("Failed to release run lock %s: %s", self.pid_path, e)
        finally:
            self.pid = None

    def __enter__(self) -> "RunLock":
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
