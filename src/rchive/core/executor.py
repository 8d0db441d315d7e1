"""Run one rsync job as a supervised child process."""

import logging
import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional

from .. import __util__
from ..config.schema import Config, RunOptions
from ..errors import TransferError
from .models import Job, JobResult, JobStatus

logger = logging.getLogger(__name__)

# Archive mode plus hard links, ACLs, xattrs and numeric ownership; extraneous
# (and newly excluded) files are deleted on the receiving side.
RSYNC_FLAGS = [
    "-aHAX",
    "--numeric-ids",
    "--delete",
    "--delete-excluded",
    "--relative",
    "--stats",
    "--itemize-changes",
]

KILL_TIMEOUT = 10


class JobExecutor:
    """Builds and runs rsync invocations for jobs.

    Several jobs of one host run through the same executor concurrently; each
    call to :meth:`run` owns its own child process. :meth:`cancel` terminates
    every child that is still running and stops new ones from starting.
    """

    def __init__(
        self,
        config: Config,
        options: RunOptions,
        rsync_binary: str = "rsync",
        ssh_binary: str = "ssh",
    ) -> None:
        self.config = config
        self.options = options
        self.rsync_binary = rsync_binary
        self.ssh_binary = ssh_binary
        self._active: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def backup_root(self) -> Path:
        return self.config.global_config.backup_dest

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def build_excludes(self, job: Job) -> list[str]:
        """Per-job excludes, then config-wide, then command line; no repeats."""
        merged: list[str] = []
        for pattern in (*job.excludes, *self.config.global_config.exclude, *self.options.excludes):
            if pattern not in merged:
                merged.append(pattern)
        return merged

    def build_ssh_command(self, job: Job) -> str:
        cmd = [self.ssh_binary, "-p", str(job.port)]
        if self.config.global_config.ssh_key:
            cmd += ["-i", str(Path(self.config.global_config.ssh_key).expanduser())]
        cmd += [
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={int(self.config.global_config.probe_timeout) or 1}",
        ]
        return shlex.join(cmd)

    def build_command(self, job: Job) -> list[str]:
        cmd = [self.rsync_binary, *RSYNC_FLAGS]
        if self.options.dry_run:
            cmd.append("--dry-run")
        cmd += [f"--exclude={pattern}" for pattern in self.build_excludes(job)]
        if not job.is_local:
            cmd += ["-e", self.build_ssh_command(job)]
        cmd += [job.rsync_source(), f"{job.live_dir(self.backup_root)}/"]
        logger.debug("rsync command for %s: %s", job.name, cmd)
        return cmd

    def run(self, job: Job) -> JobResult:
        """Run rsync for ``job`` and capture its combined output.

        The returned result has its exit code and output filled in; its status
        is only set here when rsync never ran (cancelled or not executable).
        """
        result = JobResult(job=job, destination=job.destination(self.backup_root))
        if self.cancelled:
            result.status = JobStatus.FAILED
            result.detail = "cancelled before start"
            return result

        if not self.options.dry_run:
            job.live_dir(self.backup_root).mkdir(parents=True, exist_ok=True)

        logger.info("Starting backup for target: %s", job.source)
        started = time.monotonic()
        try:
            proc = self._spawn(self.build_command(job))
        except TransferError as e:
            logger.error("Job %s: %s", job.name, e)
            result.exit_code = 127
            result.status = JobStatus.FAILED
            result.detail = str(e)
            return result
        if proc is None:
            result.status = JobStatus.FAILED
            result.detail = "cancelled before start"
            return result

        lines = []
        try:
            if proc.stdout is not None:
                for line in proc.stdout:
                    lines.append(line)
                    logger.debug("[%s] %s", job.name, line.rstrip())
            result.exit_code = proc.wait()
        finally:
            with self._lock:
                self._active.discard(proc)
            if proc.stdout is not None:
                proc.stdout.close()

        result.output = "".join(lines)
        result.duration_seconds = time.monotonic() - started
        if self.cancelled:
            result.status = JobStatus.FAILED
            result.detail = "cancelled"
        logger.debug("rsync for %s exited with %s", job.name, result.exit_code)
        return result

    def _spawn(self, cmd: list[str]) -> Optional[subprocess.Popen]:
        """Start rsync unless the executor was cancelled.

        Raises:
            TransferError: If the rsync binary cannot be executed
        """
        with self._lock:
            if self.cancelled:
                return None
            try:
                proc = __util__.exec_subprocess(
                    cmd,
                    method="Popen",
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    errors="replace",
                )
            except OSError as e:
                raise TransferError(f"cannot execute {self.rsync_binary}: {e}") from e
            self._active.add(proc)
        return proc

    def cancel(self, kill_timeout: Optional[float] = KILL_TIMEOUT) -> None:
        """Terminate all running children, escalating to SIGKILL."""
        with self._lock:
            self._cancelled.set()
            procs = list(self._active)
        if not procs:
            return
        logger.warning("Cancelling %d running rsync process(es)", len(procs))
        for proc in procs:
            if proc.poll() is None:
                proc.terminate()
        for proc in procs:
            try:
                proc.wait(timeout=kill_timeout)
            except subprocess.TimeoutExpired:
                logger.warning("rsync (PID %d) ignored SIGTERM, killing it", proc.pid)
                proc.kill()
