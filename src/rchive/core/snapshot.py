"""Generational hard-link snapshots of a host's Live directory.

``Snapshot.0`` is always the newest. Each rotation drops the oldest slot,
shifts the rest up by one and clones Live into a fresh ``Snapshot.0`` with
``cp -al``, so unchanged files share inodes with Live and older snapshots.
rsync replaces changed files instead of editing them in place, which breaks
the link on the Live side and leaves the snapshot copy untouched.
"""

import logging
import re
import shutil
import subprocess
from pathlib import Path

from .. import __util__
from ..errors import SnapshotError
from .models import SNAPSHOT_PREFIX, ArtifactStatus, SnapshotResult

logger = logging.getLogger(__name__)

PARTIAL_NAME = ".Snapshot.0.partial"
SNAPSHOT_RE = re.compile(rf"^{re.escape(SNAPSHOT_PREFIX)}(\d+)$")


def snapshot_path(host_dir: Path, index: int) -> Path:
    return Path(host_dir) / f"{SNAPSHOT_PREFIX}{index}"


def list_snapshot_indices(host_dir: Path) -> list[int]:
    """Indices of existing Snapshot.N directories, ascending."""
    host_dir = Path(host_dir)
    if not host_dir.is_dir():
        return []
    indices = []
    for item in host_dir.iterdir():
        match = SNAPSHOT_RE.match(item.name)
        if match and item.is_dir():
            indices.append(int(match.group(1)))
    return sorted(indices)


class SnapshotRotator:
    """Rotate ``Snapshot.0 .. Snapshot.N-1`` next to a host's Live directory."""

    def __init__(self, cp_binary: str = "cp") -> None:
        self.cp_binary = cp_binary

    def rotate(self, host: str, live_dir: Path, retention_count: int) -> SnapshotResult:
        live_dir = Path(live_dir)
        if retention_count < 1:
            raise ValueError("retention_count must be at least 1")

        if not live_dir.is_dir():
            logger.info("No Live directory for %s yet (%s), skipping snapshot", host, live_dir)
            return SnapshotResult(ArtifactStatus.SKIPPED, message="Live directory does not exist")

        logger.info("Rotating snapshots for %s (keeping %d)", host, retention_count)
        removed: list[Path] = []
        try:
            self._shift(live_dir.parent, retention_count, removed)
            target = self._clone(live_dir)
        except SnapshotError as e:
            logger.error("Snapshot for %s failed: %s", host, e)
            return SnapshotResult(ArtifactStatus.FAILED, message=str(e), removed=removed)

        logger.info("Created snapshot %s", target)
        return SnapshotResult(ArtifactStatus.SUCCESS, path=target, removed=removed)

    def _shift(self, host_dir: Path, retention_count: int, removed: list[Path]) -> None:
        """Free ``Snapshot.0``, keeping at most ``retention_count - 1`` older slots."""
        try:
            partial = host_dir / PARTIAL_NAME
            if partial.exists():
                logger.warning("Removing leftover partial snapshot %s", partial)
                shutil.rmtree(partial)

            # Drop the oldest retained slot and anything beyond it
            for index in list_snapshot_indices(host_dir):
                if index >= retention_count - 1:
                    path = snapshot_path(host_dir, index)
                    logger.info("Deleting oldest snapshot %s", path)
                    shutil.rmtree(path)
                    removed.append(path)

            # Kept slots become Snapshot.1, Snapshot.2, ... in order, closing gaps
            # left by manual deletions. Upward moves run from the top, downward
            # moves from the bottom, so no slot is overwritten before it moved.
            kept = [i for i in list_snapshot_indices(host_dir) if i < retention_count - 1]
            moves = [(index, position + 1) for position, index in enumerate(kept)]
            upward = [m for m in reversed(moves) if m[1] > m[0]]
            downward = [m for m in moves if m[1] < m[0]]
            for index, target in upward + downward:
                logger.debug("Moving %s%d -> %s%d", SNAPSHOT_PREFIX, index, SNAPSHOT_PREFIX, target)
                snapshot_path(host_dir, index).rename(snapshot_path(host_dir, target))
        except OSError as e:
            raise SnapshotError(f"rotation failed: {e}") from e

    def _clone(self, live_dir: Path) -> Path:
        """Hard-link clone Live into ``Snapshot.0`` via a partial directory."""
        host_dir = live_dir.parent
        partial = host_dir / PARTIAL_NAME
        target = snapshot_path(host_dir, 0)
        cmd = [self.cp_binary, "-al", str(live_dir), str(partial)]
        done = False
        try:
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
                raise SnapshotError(lines[-1] if lines else f"cp exited with {proc.returncode}")
            partial.rename(target)
            done = True
        except OSError as e:
            raise SnapshotError(str(e)) from e
        finally:
            if not done and partial.exists():
                shutil.rmtree(partial, ignore_errors=True)
        return target
