"""Job validation and grouping by host.

Sources have the form ``[user@]host[:port]:/remote/path``. A numeric field
between the first two colons is the SSH port; without one the port is 22.
"""

import logging
import re
from typing import Iterable

from ..config.schema import JobSpec
from ..errors import ConfigError
from .models import DEFAULT_SSH_PORT, LOCAL_HOST, HostGroup, Job

logger = logging.getLogger(__name__)

JOB_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def parse_source(source: str) -> tuple[str | None, str, int, str]:
    """Split a source specification.

    Returns:
        Tuple of (user, host, port, remote_path); trailing slashes are removed
        from the path.

    Raises:
        ConfigError: If host or path are missing or the port is out of range
    """
    if ":" not in source:
        raise ConfigError(f"Source '{source}' is missing ':' before the remote path")

    user_host, rest = source.split(":", 1)
    port = DEFAULT_SSH_PORT
    head, sep, tail = rest.partition(":")
    if sep and head.isdigit():
        port = int(head)
        rest = tail
    if not 0 < port < 65536:
        raise ConfigError(f"Source '{source}' has an invalid port {port}")

    user = None
    host = user_host
    if "@" in user_host:
        user, host = user_host.rsplit("@", 1)
        user = user or None
    if not host:
        raise ConfigError(f"Source '{source}' has no host")

    path = rest.rstrip("/")
    if not rest:
        raise ConfigError(f"Source '{source}' has no remote path")
    if not path:
        # The source was the remote root itself
        path = "/"
    return user, host, port, path


def build_job(spec: JobSpec) -> Job:
    """Validate one declared job and turn it into a Job."""
    if not JOB_NAME_RE.match(spec.name):
        raise ConfigError(
            f"Invalid job name '{spec.name}': only letters, digits and '_' are allowed"
        )
    if not spec.source:
        raise ConfigError(f"Job '{spec.name}' has no source defined")

    user, host, port, path = parse_source(spec.source)
    return Job(
        name=spec.name,
        host=host,
        remote_path=path,
        user=user,
        port=port,
        excludes=tuple(spec.exclude),
        source=spec.source,
    )


def load_jobs(specs: Iterable[JobSpec]) -> list[HostGroup]:
    """Validate all jobs and group them by host.

    Every job is validated before anything is returned, so a single bad job
    aborts the run before any host is processed.

    Returns:
        Host groups sorted by host name; jobs keep declaration order.

    Raises:
        ConfigError: On invalid names, missing sources, duplicate names or
            two jobs of one host sharing a source basename
    """
    jobs: list[Job] = []
    seen: set[str] = set()
    archive_keys: dict[tuple[str, str], str] = {}
    for spec in specs:
        if spec.name in seen:
            raise ConfigError(f"Job '{spec.name}' is listed more than once")
        seen.add(spec.name)
        job = build_job(spec)
        # Archives and their retention are keyed by host and source basename
        other = archive_keys.setdefault((job.host, job.archive_key), job.name)
        if other != job.name:
            raise ConfigError(
                f"Jobs '{other}' and '{job.name}' both archive '{job.archive_key}' "
                f"on host '{job.host}'; source basenames must be unique per host"
            )
        logger.debug("Job %s: %s -> host %s port %d", job.name, job.source, job.host, job.port)
        jobs.append(job)

    groups = []
    for host in sorted({job.host for job in jobs}):
        host_jobs = tuple(job for job in jobs if job.host == host)
        if host == LOCAL_HOST:
            logger.debug("Host %s uses the local filesystem directly", host)
        groups.append(HostGroup(host=host, jobs=host_jobs))
    return groups
