"""Utility functions for review-sweep."""

import logging
import shlex
import subprocess
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console()
LOG_FORMAT = "[%(asctime)s] [rsw] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_NAME = "review_sweep"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the project logger or one of its children.

    Args:
        name: Optional child name (e.g., "resolution")

    Returns:
        Logger instance under the project hierarchy

    """
    if not name:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def configure_logger(
    log_file: Path | None = None,
    *,
    debug: bool = False,
) -> logging.Logger:
    """Configure and return the project logger.

    Args:
        log_file: Optional path to a log file
        debug: Enable debug mode

    Returns:
        Configured logger instance

    """
    logger = get_logger()
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    rich_handler = RichHandler(
        console=console,
        show_time=False,
        show_level=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(level)
    rich_handler.setFormatter(formatter)
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def run_command(
    command: str | list[str],
    cwd: Path | None = None,
    *,
    capture_output: bool = True,
    check: bool = False,
) -> tuple[int, str, str]:
    """Run a command without invoking a shell.

    String commands are tokenized with ``shlex.split``.

    Args:
        command: Command to run as a string or argv list
        cwd: Working directory
        capture_output: Capture stdout and stderr
        check: Raise exception on non-zero exit code

    Returns:
        Tuple of (exit_code, stdout, stderr)

    """
    try:
        args = shlex.split(command) if isinstance(command, str) else command
    except ValueError as exc:
        return (2, "", f"Invalid command syntax: {exc}")

    if not args:
        return (2, "", "No command provided")

    try:
        result = subprocess.run(  # noqa: S603  # args are tokenized argv with shell disabled.
            args,
            cwd=cwd,
            capture_output=capture_output,
            text=True,
            check=check,
        )
    except FileNotFoundError:
        return (127, "", f"Command not found: {args[0]}")
    else:
        return (result.returncode, result.stdout or "", result.stderr or "")


def format_duration(total_seconds: int) -> str:
    """Format duration in seconds to human-readable string.

    Args:
        total_seconds: Duration in seconds

    Returns:
        Formatted duration string

    """
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
