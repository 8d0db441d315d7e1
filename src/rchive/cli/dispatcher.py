"""CLI entry point: argument parsing and routing."""

import argparse
import sys

from .. import __version__
from .common import ArgumentParser, add_verbosity_args


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = ArgumentParser(
        prog="rchive",
        description=(
            "Mirror directories from remote hosts with rsync, then archive, "
            "snapshot and report per host"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Exit codes: 0 run completed, 1 configuration or lock error, 130 interrupted",
    )
    parser.add_argument(
        "config",
        metavar="CONFIG",
        nargs="?",
        help="Path to the TOML configuration file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run rsync with --dry-run; no archives or snapshots are created",
    )
    parser.add_argument(
        "--exclude",
        metavar="PATTERN",
        action="append",
        default=[],
        help="Exclude pattern added to every job for this run (repeatable)",
    )
    parser.add_argument(
        "--no-email",
        action="store_true",
        help="Do not mail host reports even if report_email is set",
    )
    parser.add_argument(
        "--print-example-config",
        action="store_true",
        help="Print an example configuration and exit",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    add_verbosity_args(parser)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the rchive CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"rchive {__version__}")
        return 0

    if args.print_example_config:
        from ..config import generate_example_config

        print(generate_example_config(), end="")
        return 0

    if not args.config:
        parser.error("the following arguments are required: CONFIG")

    from .run import execute_run

    return execute_run(args)
