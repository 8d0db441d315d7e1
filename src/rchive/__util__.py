# pyright: standard

"""rchive: rchive/__util__.py
Common utility code shared among modules.
"""

import logging
import subprocess

logger = logging.getLogger(__name__)


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"{'=' * 18} {caption} {'=' * 18}"


def format_duration(seconds: float) -> str:
    """Render a duration the way the backup reports show it.

    >>> format_duration(93784)
    '1 days, 02 hours, 03 minutes, 04 seconds'
    """
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{days} days, {hours:02d} hours, {minutes:02d} minutes, {secs:02d} seconds"


def format_size(num_bytes: int) -> str:
    """Human readable size, in the spirit of ``du -h``."""
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            if unit == "B":
                return f"{int(size)}{unit}"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}P"


def exec_subprocess(command, method="run", **kwargs):
    """Run ``command`` and log it; CalledProcessError is logged and re-raised."""
    logger.debug("Executing: %s", command)
    try:
        if method == "Popen":
            return subprocess.Popen(command, **kwargs)
        return subprocess.run(command, **kwargs)
    except subprocess.CalledProcessError as e:
        logger.error("Command failed (%d): %s", e.returncode, command)
        if e.stderr:
            logger.error("stderr: %s", e.stderr.strip() if isinstance(e.stderr, str) else e.stderr)
        raise
