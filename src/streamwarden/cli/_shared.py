"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes and their mapping from exceptions
- JSON output formatting
- Console utilities for error handling
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import IntEnum
from typing import TYPE_CHECKING, Never

from streamwarden.exceptions import (
    ConfigError,
    DependencyMissingError,
    LockTimeoutError,
    NoDevicesError,
    PermissionDeniedError,
    RelayStartError,
    StreamWardenError,
)
from streamwarden.utils import dump_json

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console
    from structlog.typing import FilteringBoundLogger

__all__ = [
    "ExitCode",
    "command_errors",
    "exit_code_for",
    "exit_with_error",
    "format_json",
    "get_error_console",
]


class ExitCode(IntEnum):
    """Process exit codes of the streamwarden CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    PERMISSION_DENIED = 2
    MISSING_DEPENDENCY = 3
    CONFIG_ERROR = 4
    LOCK_FAILED = 5
    NO_DEVICES = 6
    CRITICAL_RESOURCES = 7


def exit_code_for(error: BaseException) -> ExitCode:
    """Return the exit code that reports ``error``."""
    if isinstance(error, ConfigError):
        return ExitCode.CONFIG_ERROR
    if isinstance(error, LockTimeoutError):
        return ExitCode.LOCK_FAILED
    if isinstance(error, NoDevicesError):
        return ExitCode.NO_DEVICES
    if isinstance(error, DependencyMissingError):
        return ExitCode.MISSING_DEPENDENCY
    if isinstance(error, (PermissionDeniedError, PermissionError)):
        return ExitCode.PERMISSION_DENIED
    return ExitCode.GENERAL_ERROR


def format_json(data: object, *, indent: bool = True) -> str:
    """Format data as JSON.

    Dataclasses, enums and paths are serialized natively.
    """
    return dump_json(data, indent=indent)


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr.

    Returns:
        Console instance writing to stderr.
    """
    from rich.console import Console  # noqa: PLC0415

    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.GENERAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Args:
        message: The error message to display.
        code: The exit code to use (defaults to GENERAL_ERROR).
        console: Optional Rich console for output. If not provided,
            a new stderr console will be created.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}", markup=True, highlight=False)
    raise SystemExit(code)


@contextmanager
def command_errors(
    logger: FilteringBoundLogger | None = None,
    *,
    console: Console | None = None,
) -> Iterator[None]:
    """Turn domain and permission errors into the matching process exit.

    Args:
        logger: Receives a ``command_failed`` entry for every mapped error.
        console: Console for the error message. Defaults to stderr.

    Raises:
        SystemExit: With the code from :func:`exit_code_for`.
    """
    try:
        yield
    except (StreamWardenError, PermissionError) as e:
        code = exit_code_for(e)
        if logger is not None:
            logger.error(
                "command_failed",
                error=str(e),
                error_type=type(e).__name__,
                exit_code=int(code),
            )
        if isinstance(e, RelayStartError) and e.output_tail:
            (console or get_error_console()).print(e.output_tail, markup=False)
        exit_with_error(str(e), code, console=console)
