"""Per-host email reports.

The report is rendered from a HostResult alone; raw rsync output is only
included as the statistics block of each job.
"""

import logging
import socket
import subprocess
from email.message import EmailMessage
from typing import Optional

from . import __util__
from .core.models import ArtifactStatus, HostResult, HostStatus, JobResult, JobStatus

logger = logging.getLogger(__name__)

SENDMAIL = "/usr/sbin/sendmail"

ICON_SUCCESS = "✅"
ICON_FAIL = "❌"
ICON_INFO = "ℹ️"
ICON_CLOCK = "⏱️"
ICON_TARGET = "🎯"
ICON_ARCHIVE = "📦"
ICON_WARNING = "⚠️"

SEPARATOR = "-" * 50


def _archive_line(result: JobResult) -> Optional[str]:
    archive = result.archive
    if archive is None or archive.status is ArtifactStatus.DISABLED:
        return None
    if archive.status is ArtifactStatus.SUCCESS:
        line = (
            f"{ICON_ARCHIVE} Archive Status: SUCCESS - {archive.path} "
            f"(Size: {__util__.format_size(archive.size)})"
        )
        if archive.deleted:
            line += f"\nRetention: deleted {len(archive.deleted)} old archive(s)"
        if archive.message:
            line += f"\nNote: {archive.message}"
        return line
    if archive.status is ArtifactStatus.SKIPPED:
        return f"{ICON_ARCHIVE} Archive Status: SKIPPED ({archive.message})"
    return f"{ICON_ARCHIVE} Archive Status: FAILED - {archive.message}"


def _job_block(result: JobResult) -> str:
    lines = [SEPARATOR]
    icon = ICON_SUCCESS if not result.failed else ICON_FAIL
    lines.append(f"{icon} Target: {result.job.source}")
    if result.status is JobStatus.SUCCESS:
        lines.append("Status: SUCCESS")
    elif result.status is JobStatus.SKIPPED:
        lines.append(f"Status: SKIPPED - {result.detail}")
    else:
        lines.append(f"Status: FAILED (Code: {result.exit_code})")
        if result.errors:
            lines.append("Errors:")
            lines.extend(f"  - {m.signature}: {m.line}" for m in result.errors)
        elif result.detail:
            lines.append(f"Error: {result.detail}")

    archive_line = _archive_line(result)
    if archive_line:
        lines.append(archive_line)

    if result.output:
        lines.append("")
        lines.append("Change Details & Statistics:")
        lines.append(result.output.rstrip())
    lines.append("")
    return "\n".join(lines)


def _snapshot_line(host_result: HostResult) -> Optional[str]:
    snapshot = host_result.snapshot
    if snapshot is None or snapshot.status is ArtifactStatus.DISABLED:
        return None
    if snapshot.status is ArtifactStatus.SUCCESS:
        return f"Snapshot Status: SUCCESS - {snapshot.path}"
    return f"Snapshot Status: {snapshot.status.value} ({snapshot.message})"


def render_report(host_result: HostResult, dry_run: bool = False) -> tuple[str, str]:
    """Build (subject, body) for one host."""
    node = socket.gethostname()
    status = host_result.status
    status_icon = ICON_SUCCESS if status is HostStatus.SUCCESS else ICON_FAIL
    subject_tag = "[DRY RUN] " if dry_run else ""
    subject = (
        f"Rsync Backup Report for {host_result.host} from {node} - "
        f"{subject_tag}Status: {status.value} {status_icon}"
    )

    header = []
    if dry_run:
        header.append(f"{ICON_WARNING} WARNING: DRY RUN MODE ENABLED. NO CHANGES WERE MADE. {ICON_WARNING}")
        header.append("")
    header.append(f"{ICON_INFO} Backup Summary for Host: {host_result.host}")
    header.append(f"{status_icon} Overall Status: {status.value}")
    header.append(
        f"{ICON_CLOCK} Total Duration for Host: {__util__.format_duration(host_result.duration)}"
    )
    snapshot_line = _snapshot_line(host_result)
    if snapshot_line:
        header.append(snapshot_line)
    header.append("")
    header.append("Processed Targets on this Host:")
    header.extend(f"  {ICON_TARGET} {r.job.source}" for r in host_result.job_results)
    header.append("")

    body = "\n".join(header) + "\n" + "\n".join(_job_block(r) for r in host_result.job_results)
    return subject, body


def build_message(recipient: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f"backup-reporter@{socket.gethostname()}"
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body, charset="utf-8")
    return message


def send_report(
    host_result: HostResult,
    recipient: str,
    dry_run: bool = False,
    sendmail: str = SENDMAIL,
) -> bool:
    """Mail the report for one host via ``sendmail -t``.

    Returns:
        True if sendmail accepted the message. Failures are logged only.
    """
    subject, body = render_report(host_result, dry_run=dry_run)
    message = build_message(recipient, subject, body)
    logger.info("Constructing and sending email report for host %s...", host_result.host)
    try:
        proc = __util__.exec_subprocess(
            [sendmail, "-t"],
            input=message.as_bytes(),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        logger.error("Cannot run %s: %s", sendmail, e)
        return False
    if proc.returncode != 0:
        logger.error(
            "sendmail exited with %d: %s",
            proc.returncode,
            (proc.stdout or b"").decode("utf-8", "replace").strip(),
        )
        return False
    logger.info("Email report for host %s sent to %s.", host_result.host, recipient)
    return True
