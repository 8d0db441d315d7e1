"""Shared CLI utilities and argument parsers."""

import argparse
import sys


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output",
    )


def get_log_level(args: argparse.Namespace, config_verbose=False, config_quiet=False) -> str:
    """Determine log level from parsed arguments.

    Command line flags win; the config file's verbose/quiet flags are used
    when none is given.

    Args:
        args: Parsed command line arguments
        config_verbose: ``global.verbose`` from the configuration
        config_quiet: ``global.quiet`` from the configuration

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    elif config_quiet:
        return "WARNING"
    elif config_verbose:
        return "DEBUG"
    else:
        return "INFO"
