"""Host-by-host scheduling of backup jobs.

Hosts are processed one at a time. Within a host every job gets its own
worker (and rsync process) and the scheduler waits for all of them before it
archives, snapshots and reports that host. At most one host's worth of
transfers is therefore in flight.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional

from .. import __util__
from ..config.schema import Config, RunOptions
from ..errors import ConnectivityError, InterruptedRunError
from . import classifier
from .archive import ArchiveRetentionManager
from .executor import JobExecutor
from .models import (
    ArchiveResult,
    ArtifactStatus,
    HostGroup,
    HostResult,
    JobResult,
    JobStatus,
    RunResult,
    SnapshotResult,
)
from .probe import ConnectivityProbe
from .snapshot import SnapshotRotator

logger = logging.getLogger(__name__)

DRY_RUN_REASON = "Dry Run"

HostCallback = Callable[[HostResult], None]


class HostScheduler:
    """Drive probe, jobs, archives and snapshots for each host in turn."""

    def __init__(
        self,
        config: Config,
        options: RunOptions,
        executor: Optional[JobExecutor] = None,
        probe: Optional[ConnectivityProbe] = None,
        archiver: Optional[ArchiveRetentionManager] = None,
        rotator: Optional[SnapshotRotator] = None,
        on_host_complete: Optional[HostCallback] = None,
    ) -> None:
        self.config = config
        self.options = options
        self.executor = executor or JobExecutor(config, options)
        self.probe = probe or ConnectivityProbe()
        if archiver is None and config.archive.enabled and config.global_config.archive_dest:
            archiver = ArchiveRetentionManager(config.global_config.archive_dest, config.archive)
        self.archiver = archiver
        self.rotator = rotator or SnapshotRotator()
        self.on_host_complete = on_host_complete

    def run(self, groups: list[HostGroup]) -> RunResult:
        """Process every host group in order.

        Raises:
            InterruptedRunError: On KeyboardInterrupt (SIGINT/SIGTERM), after
                all running rsync processes have been cancelled
        """
        result = RunResult(dry_run=self.options.dry_run)
        try:
            for group in groups:
                host_result = self.run_host(group)
                result.hosts.append(host_result)
                if self.on_host_complete is not None:
                    self.on_host_complete(host_result)
        except KeyboardInterrupt as e:
            logger.error("Backup interrupted, cancelling running jobs")
            self.executor.cancel()
            raise InterruptedRunError("Backup run interrupted") from e
        finally:
            result.completed_at = time.time()
        return result

    def run_host(self, group: HostGroup) -> HostResult:
        logger.info(__util__.log_heading(f"Starting Backup for Host: {group.host}"))
        host_result = HostResult(host=group.host)

        try:
            host_result.probe_detail = self._probe(group)
        except ConnectivityError as e:
            host_result.probe_detail = str(e)
            logger.error("Host %s is unreachable: %s. Skipping its jobs.", group.host, e)
            for job in group.jobs:
                host_result.job_results.append(
                    JobResult(
                        job=job,
                        status=JobStatus.SKIPPED,
                        detail=f"skipped: host unreachable ({e})",
                    )
                )
            host_result.snapshot = SnapshotResult(ArtifactStatus.SKIPPED, message="host unreachable")
            host_result.completed_at = time.time()
            return host_result

        host_result.job_results = self._run_jobs(group)
        logger.info("All backup jobs for host %s have finished.", group.host)

        for job_result in host_result.job_results:
            self._log_outcome(job_result)
            if job_result.status is JobStatus.SUCCESS:
                job_result.archive = self._archive(job_result)

        host_result.snapshot = self._snapshot(group, host_result.job_results)
        host_result.completed_at = time.time()
        logger.info(
            "Host %s finished with status %s in %s",
            group.host,
            host_result.status.value,
            __util__.format_duration(host_result.duration),
        )
        return host_result

    def _probe(self, group: HostGroup) -> str:
        """Check the host once before any of its jobs.

        Raises:
            ConnectivityError: If the host does not answer on its SSH port
        """
        result = self.probe.check(group.host, group.port, self.config.global_config.probe_timeout)
        if not result.reachable:
            raise ConnectivityError(result.detail)
        return result.detail

    def _run_jobs(self, group: HostGroup) -> list[JobResult]:
        """Run all jobs of a host concurrently and wait for every one."""
        with ThreadPoolExecutor(
            max_workers=len(group.jobs), thread_name_prefix=f"rchive-{group.host}"
        ) as pool:
            futures: dict[str, Future] = {
                job.name: pool.submit(self._run_job, job) for job in group.jobs
            }
            logger.info("Waiting for all backup jobs on host %s to complete...", group.host)
            try:
                wait(futures.values())
            except KeyboardInterrupt:
                self.executor.cancel()
                for future in futures.values():
                    future.cancel()
                raise

        results = []
        for job in group.jobs:
            try:
                results.append(futures[job.name].result())
            except Exception as e:
                logger.error("Job %s failed unexpectedly: %s", job.name, e)
                results.append(JobResult(job=job, status=JobStatus.FAILED, detail=str(e)))
        return results

    def _run_job(self, job) -> JobResult:
        result = self.executor.run(job)
        if result.status is None:
            outcome = classifier.classify(result.exit_code or 0, result.output)
            result.status = outcome.status
            result.errors = outcome.matches
            result.detail = outcome.detail
        return result

    def _log_outcome(self, result: JobResult) -> None:
        if result.status is JobStatus.SUCCESS:
            logger.info("Backup for target %s SUCCESS.", result.job.source)
            return
        logger.error(
            "Backup for target %s FAILED with exit code %s: %s",
            result.job.source,
            result.exit_code,
            result.detail,
        )
        for match in result.errors:
            logger.error("  [%s] %s", match.signature, match.line)

    def _archive(self, job_result: JobResult) -> ArchiveResult:
        if not self.config.archive.enabled or self.archiver is None:
            return ArchiveResult(ArtifactStatus.DISABLED)
        if self.options.dry_run:
            return ArchiveResult(ArtifactStatus.SKIPPED, message=DRY_RUN_REASON)
        logger.info("--- Starting Archive Creation for target %s ---", job_result.job.source)
        return self.archiver.archive(job_result.job, job_result.destination)

    def _snapshot(self, group: HostGroup, results: list[JobResult]) -> SnapshotResult:
        if not self.config.snapshot.enabled:
            return SnapshotResult(ArtifactStatus.DISABLED)
        if self.options.dry_run:
            return SnapshotResult(ArtifactStatus.SKIPPED, message=DRY_RUN_REASON)
        if not any(r.status is JobStatus.SUCCESS for r in results):
            logger.warning("No successful job on %s, keeping existing snapshots", group.host)
            return SnapshotResult(ArtifactStatus.SKIPPED, message="no successful jobs")
        live_dir = group.jobs[0].live_dir(self.config.global_config.backup_dest)
        return self.rotator.rotate(group.host, live_dir, self.config.snapshot.retention_count)
