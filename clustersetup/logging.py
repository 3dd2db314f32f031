"""Logging configuration and operator-facing output for the pipeline."""
import logging
import sys

from rich.console import Console

from .config import Config

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def setup_logging(debug_mode: bool = False) -> None:
    """Configure the package loggers.

    Args:
        debug_mode: Log at DEBUG instead of the configured ``LOG_LEVEL``
    """
    level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logger = logging.getLogger("clustersetup")
    logger.setLevel(level)

    # Replace handlers from a previous call so output follows the current stderr
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)

    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('kubernetes').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)


def banner(message: str) -> None:
    console.print(f"\n==> {message}", style="bold cyan", markup=False)


def ok(message: str) -> None:
    console.print(f"✔ {message}", style="bold green", markup=False)


def info(message: str) -> None:
    console.print(f"ℹ {message}", style="bold blue", markup=False)


def warn(message: str) -> None:
    console.print(f"⚠ {message}", style="bold yellow", markup=False)


def err(message: str) -> None:
    err_console.print(f"✘ {message}", style="bold red", markup=False)
