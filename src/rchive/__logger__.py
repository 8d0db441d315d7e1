# pyright: standard

"""rchive: rchive/__logger__.py
A common logger for displaying on a rich console and the daily log file.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Initialize basic console and handler
cons = Console(stderr=True)
rich_handler = RichHandler(console=cons, show_path=False)
# Package logger; module loggers (rchive.core.*) propagate to it
logger = logging.getLogger("rchive")
logger.setLevel(logging.INFO)

FILE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def create_logger(level: str | int = "INFO") -> None:
    """Helper function to setup console logging at the given level."""
    # pylint: disable=global-statement
    global cons, rich_handler

    cons = Console(stderr=True)
    rich_handler = RichHandler(console=cons, show_path=False)

    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(rich_handler)
    logger.setLevel(level)


def add_file_handler(path: Path | str, level: str | int = logging.DEBUG) -> logging.Handler:
    """Mirror log records into ``path`` (created with its parents)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
    handler.setLevel(level)
    logger.addHandler(handler)
    # File gets everything the handler accepts, console keeps its own level
    if logger.level > handler.level:
        rich_handler.setLevel(logger.level)
        logger.setLevel(handler.level)
    return handler


def remove_handler(handler: logging.Handler) -> None:
    """Detach and close a handler added by add_file_handler."""
    logger.removeHandler(handler)
    handler.close()
