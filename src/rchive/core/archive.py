"""Per-job compressed archives and their retention.

Archives live at ``<archive_root>/<host>/<YYYY>/<MM>/<key>-<timestamp>.<ext>``
where ``key`` is the basename of the job's source. tar writes to a
``.partial`` file that is renamed only once the archive is complete, so an
interrupted run never leaves something that looks like a finished archive.
"""

import logging
import re
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from .. import __util__
from ..config.schema import ArchiveConfig, RetentionPolicy
from ..errors import ArchiveError
from .models import ArchiveResult, ArtifactStatus, Job

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"
PARTIAL_SUFFIX = ".partial"

# compression -> (tar flag, file extension)
COMPRESSION_FORMATS = {
    "zstd": ("--zstd", "tar.zst"),
    "gzip": ("--gzip", "tar.gz"),
    "xz": ("--xz", "tar.xz"),
}


class ArchiveRetentionManager:
    """Create archives of job destinations and prune old ones."""

    def __init__(
        self,
        archive_root: Path,
        config: ArchiveConfig,
        tar_binary: str = "tar",
    ) -> None:
        self.archive_root = Path(archive_root)
        self.config = config
        self.tar_binary = tar_binary
        self.flag, self.extension = COMPRESSION_FORMATS[config.compression]

    def archive_path(self, job: Job, when: Optional[datetime] = None) -> Path:
        when = when or datetime.now()
        return (
            self.archive_root
            / job.host
            / when.strftime("%Y")
            / when.strftime("%m")
            / f"{job.archive_key}-{when.strftime(TIMESTAMP_FORMAT)}.{self.extension}"
        )

    def _key_pattern(self, key: str) -> re.Pattern:
        return re.compile(
            rf"^{re.escape(key)}-(\d{{4}}-\d{{2}}-\d{{2}}_\d{{6}})\.{re.escape(self.extension)}$"
        )

    def archive(self, job: Job, destination: Path) -> ArchiveResult:
        """Archive ``destination`` for ``job``, then apply retention.

        Retention problems are logged and reported in the message; only a
        failure to create the archive itself makes the result FAILED.
        """
        target = self.archive_path(job)
        logger.info("Creating compressed archive: %s", target)
        try:
            self._create(Path(destination), target)
        except ArchiveError as e:
            logger.error("Failed to create archive for %s: %s", job.name, e)
            return ArchiveResult(ArtifactStatus.FAILED, message=str(e))

        size = target.stat().st_size
        logger.info(
            "Archive for target %s created successfully. Size: %s",
            job.source,
            __util__.format_size(size),
        )
        result = ArchiveResult(ArtifactStatus.SUCCESS, path=target, size=size)
        try:
            result.deleted = self.apply_retention(job.host, job.archive_key, self.config.retention)
        except OSError as e:
            logger.error("Retention for %s failed: %s", job.name, e)
            result.message = f"retention failed: {e}"
        return result

    def _create(self, destination: Path, target: Path) -> None:
        """Write ``target`` through a partial file.

        Raises:
            ArchiveError: If the target already exists, or tar cannot run or
                fails; no partial is left behind
        """
        if not destination.is_dir():
            raise ArchiveError(f"destination {destination} does not exist")
        if target.exists():
            raise ArchiveError(f"archive {target} already exists")

        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        cmd = [self.tar_binary, self.flag, "-cf", str(partial), "-C", str(destination), "."]
        done = False
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            proc = __util__.exec_subprocess(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
            )
            if proc.returncode != 0:
                lines = (proc.stdout or "").strip().splitlines()
                raise ArchiveError(lines[-1] if lines else f"tar exited with {proc.returncode}")
            partial.replace(target)
            done = True
        except OSError as e:
            raise ArchiveError(str(e)) from e
        finally:
            if not done:
                partial.unlink(missing_ok=True)

    def list_archives(self, host: str, key: str) -> list[Path]:
        """All finished archives for ``key`` on ``host``, oldest first.

        Order comes from the timestamp in the file name; modification time
        only breaks ties, so archives copied around without preserved mtimes
        still sort by creation.
        """
        host_dir = self.archive_root / host
        if not host_dir.is_dir():
            return []
        pattern = self._key_pattern(key)
        found = []
        for path in host_dir.rglob(f"*.{self.extension}"):
            match = pattern.match(path.name)
            if match is None or not path.is_file():
                continue
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                # Removed by a concurrent prune
                continue
            found.append((match.group(1), mtime, path))
        found.sort(key=lambda item: (item[0], item[1]))
        return [path for _, _, path in found]

    def apply_retention(self, host: str, key: str, policy: RetentionPolicy) -> list[Path]:
        """Delete archives of ``key`` the policy no longer allows.

        Safe to call repeatedly; archives created after the scan are not
        considered, so a race can only leave one archive too many.

        Returns:
            The deleted paths
        """
        mode = policy.mode
        if mode is None:
            return []

        archives = self.list_archives(host, key)
        if mode == "age":
            logger.info(
                "Retention Policy: Deleting archives for '%s' older than %d days.",
                key,
                policy.max_age_days,
            )
            cutoff = time.time() - policy.max_age_days * 86400
            doomed = []
            for path in archives:
                try:
                    if path.stat().st_mtime < cutoff:
                        doomed.append(path)
                except FileNotFoundError:
                    continue
        else:
            excess = len(archives) - policy.max_count
            if excess <= 0:
                return []
            logger.info(
                "Retention Policy (by count): Found %d archives, limit is %d. Deleting %d oldest.",
                len(archives),
                policy.max_count,
                excess,
            )
            doomed = archives[:excess]

        deleted = []
        for path in doomed:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            logger.info("Retention (by %s): Deleted old archive: %s", mode, path)
            deleted.append(path)
        return deleted
