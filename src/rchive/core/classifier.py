"""Classification of rsync outcomes.

rsync can exit 0 after skipping files it could not read, so the exit code
alone is not trusted: the output is also scanned for known error signatures.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .models import ErrorMatch, JobStatus

GENERIC_SIGNATURE = "rsync error"

# (name, pattern) in reporting order; the generic banner is last
ERROR_SIGNATURES = [
    ("permission denied", re.compile(r"Permission denied")),
    ("I/O error", re.compile(r"Input/output error|IO error encountered")),
    ("directory open failure", re.compile(r"opendir\b.*\bfailed|failed to open directory")),
    (
        "attribute transfer failure",
        re.compile(
            r"some files/attrs were not transferred"
            r"|failed to set (?:times|permissions|owner|xattrs?|acls?)"
            r"|set_acl|rsync_xal_set|lsetxattr"
        ),
    ),
    ("connection reset", re.compile(r"Connection reset by peer")),
    ("broken pipe", re.compile(r"Broken pipe")),
    (
        "unexpected remote error",
        re.compile(
            r"connection unexpectedly closed"
            r"|error in rsync protocol data stream"
            r"|unexpected end of file"
            r"|remote command not found"
        ),
    ),
    (GENERIC_SIGNATURE, re.compile(r"^rsync error:")),
]

# From the EXIT VALUES section of rsync(1)
RSYNC_EXIT_CODES = {
    1: "syntax or usage error",
    2: "protocol incompatibility",
    3: "errors selecting input/output files, dirs",
    4: "requested action not supported",
    5: "error starting client-server protocol",
    6: "daemon unable to append to log-file",
    10: "error in socket I/O",
    11: "error in file I/O",
    12: "error in rsync protocol data stream",
    13: "errors with program diagnostics",
    14: "error in IPC code",
    20: "received SIGUSR1 or SIGINT",
    21: "some error returned by waitpid()",
    22: "error allocating core memory buffers",
    23: "partial transfer due to error",
    24: "partial transfer due to vanished source files",
    25: "the --max-delete limit stopped deletions",
    30: "timeout in data send/receive",
    35: "timeout waiting for daemon connection",
    127: "rsync could not be executed",
    255: "ssh connection failed",
}

NO_MESSAGE = "no specific error message"


@dataclass
class Classification:
    status: JobStatus
    matches: list[ErrorMatch] = field(default_factory=list)
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCESS


def describe_exit_code(exit_code: int) -> str:
    return RSYNC_EXIT_CODES.get(exit_code, "unknown error")


def find_errors(output: str) -> list[ErrorMatch]:
    """Return every (signature, line) match, in output order."""
    matches = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        for name, pattern in ERROR_SIGNATURES:
            if pattern.search(line):
                matches.append(ErrorMatch(signature=name, line=line))
    return matches


def representative_line(output: str) -> str:
    """First human-readable line that is not rsync's generic error banner.

    rsync/ssh diagnostics (``rsync: ...``, ``ssh: ...``) are preferred over
    whatever itemized output precedes them.
    """
    candidates = [
        line.strip()
        for line in output.splitlines()
        if line.strip() and not line.strip().startswith("rsync error:")
    ]
    for line in candidates:
        if line.startswith(("rsync:", "ssh:", "rsync warning:")):
            return line
    return candidates[0] if candidates else ""


def classify(exit_code: int, output: str) -> Classification:
    """Decide a job's status from its exit code and captured output."""
    matches = find_errors(output)
    specific = [m for m in matches if m.signature != GENERIC_SIGNATURE]

    if exit_code == 0 and not matches:
        return Classification(JobStatus.SUCCESS)

    if specific:
        detail = specific[0].line
    elif exit_code != 0:
        detail = representative_line(output) or (
            f"{NO_MESSAGE} (exit code {exit_code}: {describe_exit_code(exit_code)})"
        )
    else:
        detail = matches[0].line
    return Classification(JobStatus.FAILED, matches=matches, detail=detail)
