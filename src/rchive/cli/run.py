"""Run command: back up every active job, host by host."""

import argparse
import logging
import signal
import time
from contextlib import contextmanager
from datetime import datetime
from functools import partial

from .. import __util__
from ..__logger__ import add_file_handler, create_logger, remove_handler
from ..config import ConfigError, RunOptions, load_config
from ..core.lock import RunLock, lock_key_for
from ..core.models import HostStatus
from ..core.registry import load_jobs
from ..core.scheduler import HostScheduler
from ..errors import InterruptedRunError, LockError
from ..notify import send_report
from .common import get_log_level

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INTERRUPTED = 130


# Signals that end the run through the same cleanup path as SIGINT
INTERRUPT_SIGNALS = (signal.SIGTERM, signal.SIGHUP, signal.SIGQUIT)


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"received signal {signum}")


@contextmanager
def interrupt_on_signals(signals=INTERRUPT_SIGNALS):
    """Turn termination signals into KeyboardInterrupt while the run is active."""
    previous = {signum: signal.signal(signum, _raise_interrupt) for signum in signals}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 completed, 1 fatal configuration/lock error, 130 interrupted)
    """
    create_logger(get_log_level(args))

    try:
        logger.info("Loading configuration from: %s", args.config)
        config, warnings = load_config(args.config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_FATAL

    gc = config.global_config
    create_logger(get_log_level(args, config_verbose=gc.verbose, config_quiet=gc.quiet))
    file_handler = None
    if gc.log_dir is not None:
        try:
            file_handler = add_file_handler(
                gc.log_dir / f"backup-{datetime.now().strftime('%Y-%m-%d')}.log"
            )
        except OSError as e:
            logger.error("Failed to create log directory %s: %s", gc.log_dir, e)
            return EXIT_FATAL

    try:
        for warning in warnings:
            logger.warning("Config: %s", warning)
        return _run(config, args)
    finally:
        if file_handler is not None:
            remove_handler(file_handler)


def _run(config, args: argparse.Namespace) -> int:
    options = RunOptions(
        dry_run=bool(getattr(args, "dry_run", False)),
        excludes=tuple(getattr(args, "exclude", None) or ()),
        send_email=not getattr(args, "no_email", False),
    )

    try:
        groups = load_jobs(config.get_active_specs())
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_FATAL

    if not groups:
        logger.info("No backup targets are defined or all are inactive. Exiting.")
        return EXIT_OK

    if options.dry_run:
        logger.warning("--- DRY RUN MODE ENABLED ---")

    on_host_complete = None
    recipient = config.global_config.report_email
    if recipient and options.send_email:
        on_host_complete = partial(_report, recipient=recipient, dry_run=options.dry_run)

    lock = RunLock(lock_key_for(config.path), config.global_config.lock_dir)
    started = time.time()
    try:
        with interrupt_on_signals(), lock:
            logger.info(__util__.log_heading("Starting Rsync Backup Process"))
            scheduler = HostScheduler(config, options, on_host_complete=on_host_complete)
            result = scheduler.run(groups)
    except LockError as e:
        logger.error("%s. Exiting.", e)
        return EXIT_FATAL
    except (InterruptedRunError, KeyboardInterrupt) as e:
        logger.error(
            "Backup run interrupted (%s) after %s",
            e or "SIGINT",
            __util__.format_duration(time.time() - started),
        )
        return EXIT_INTERRUPTED

    logger.info(__util__.log_heading("Entire Backup Process Finished"))
    logger.info("Global Status: %s", result.status.value)
    logger.info("Total Process Time: %s", __util__.format_duration(result.duration))
    if result.status is HostStatus.FAILURE:
        failed = [h.host for h in result.hosts if h.status is HostStatus.FAILURE]
        logger.warning("Hosts with errors: %s", ", ".join(failed))
    return EXIT_OK


def _report(host_result, recipient, dry_run):
    send_report(host_result, recipient, dry_run=dry_run)
