"""Logging utilities for streamwarden.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted logs to the system, recovery and per-stream
log files. Each logger is self-contained and does not modify global structlog
configuration, so a supervisor process and the CLI never share handlers.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler, WatchedFileHandler
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, cast

import structlog

from ._paths import (
    get_recovery_log_file,
    get_stream_log_file,
    get_system_log_file,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from streamwarden.config import Config

LogFormatType = Literal["json", "text"]


def _get_log_level() -> int:
    """Get the log level from environment variables.

    Checks STREAMWARDEN_DEBUG first (sets DEBUG if present), then
    STREAMWARDEN_LOG_LEVEL. Defaults to INFO if neither is set.
    """
    if getenv("STREAMWARDEN_DEBUG", None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(
        getenv("STREAMWARDEN_LOG_LEVEL", "info").upper(), logging.INFO
    )


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level string to a logging level integer.

    Args:
        level: Log level string (debug, info, warning, error).
        respect_env: If True, STREAMWARDEN_DEBUG and STREAMWARDEN_LOG_LEVEL
            take precedence over ``level``.

    Returns:
        The logging level as an integer.
    """
    if respect_env and (
        getenv("STREAMWARDEN_DEBUG", None) or getenv("STREAMWARDEN_LOG_LEVEL", None)
    ):
        return _get_log_level()

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(level.upper(), logging.INFO)


def _create_logger(
    log_file_path: str,
    *,
    log_level: int | None = None,
    log_format: LogFormatType = "json",
    max_bytes: int | None = None,
    backup_count: int | None = None,
    shared: bool = False,
) -> FilteringBoundLogger:
    """Create a standalone structlog logger writing to the specified file.

    Args:
        log_file_path: Path to the log file (will be opened in append mode).
        log_level: Override log level (uses env vars if not specified).
        log_format: Output format, either "json" or "text".
        max_bytes: Maximum size in bytes before rotation. Must be set with
            backup_count for rotation to be enabled.
        backup_count: Number of rotated log files to keep. Must be set with
            max_bytes for rotation to be enabled.
        shared: The file has writers in other processes. It is never rotated
            here; the handler reopens it after an external rotation instead.

    Returns:
        A configured FilteringBoundLogger instance.
    """
    log_path = Path(log_file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    effective_level = log_level if log_level is not None else _get_log_level()

    stdlib_logger: logging.Logger | None = None
    rotating = max_bytes is not None and backup_count is not None
    if shared or rotating:
        # One stdlib logger per file; re-creating it replaces the handler
        stdlib_logger = logging.getLogger(f"streamwarden.file.{log_path}")
        for old_handler in list(stdlib_logger.handlers):
            stdlib_logger.removeHandler(old_handler)
            old_handler.close()
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(effective_level)

        handler: logging.FileHandler
        if shared:
            handler = WatchedFileHandler(log_path)
        else:
            handler = RotatingFileHandler(
                log_path,
                maxBytes=cast("int", max_bytes),
                backupCount=cast("int", backup_count),
            )
        handler.setLevel(effective_level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        stdlib_logger.addHandler(handler)

        raw_logger: object = stdlib_logger
    else:
        raw_logger = structlog.WriteLoggerFactory(file=log_path.open("a"))()

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Text format: "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    wrapper_class = structlog.make_filtering_bound_logger(effective_level)

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            raw_logger,
            processors=processors,
            wrapper_class=wrapper_class,
            context_class=dict,
        ),
    )


def create_system_logger(
    config: Config,
    *,
    component: str,
) -> FilteringBoundLogger:
    """Create the logger for the shared system log.

    Every entry carries the emitting component and the PID of the writing
    process because several independent processes append to the same file.
    None of them rotates it: the logrotate policy written by ``install`` does,
    and each writer reopens the file once it has been moved.

    Args:
        config: Loaded configuration.
        component: Component name bound to all entries (orchestrator,
            supervisor, watchdog, cli).

    Returns:
        A FilteringBoundLogger bound to ``component`` and ``pid``.
    """
    logger = _create_logger(
        str(get_system_log_file(config)),
        log_level=_log_level_from_string(config.logging.level.value, respect_env=True),
        log_format=cast("LogFormatType", config.logging.format.value),
        shared=True,
    )
    return logger.bind(component=component, pid=os.getpid())


def create_recovery_logger(config: Config) -> FilteringBoundLogger:
    """Create the logger for the watchdog's recovery log.

    One JSON line per recovery attempt, independent of the system log. A
    running watchdog and ``monitor --once`` may both write it, so it is
    rotated by logrotate like the system log.
    """
    logger = _create_logger(
        str(get_recovery_log_file(config)),
        log_level=logging.INFO,
        log_format="json",
        shared=True,
    )
    return logger.bind(component="recovery")


def create_stream_logger(config: Config, identity: str) -> FilteringBoundLogger:
    """Create the isolated logger for one stream.

    The per-stream log rotates once it exceeds
    ``logging.stream_log_max_bytes``, keeping a single previous file.

    Args:
        config: Loaded configuration.
        identity: The stream identity.

    Returns:
        A FilteringBoundLogger bound to the stream identity.
    """
    logger = _create_logger(
        str(get_stream_log_file(config, identity)),
        log_level=_log_level_from_string(config.logging.level.value, respect_env=True),
        log_format=cast("LogFormatType", config.logging.format.value),
        max_bytes=config.logging.stream_log_max_bytes,
        backup_count=1,
    )
    return logger.bind(identity=identity)


def create_cli_logger(
    *,
    level: str = "info",
    log_format: LogFormatType = "json",
    log_file: str,
    command: str = "",
) -> FilteringBoundLogger:
    """Create a logger for CLI commands.

    The log level can be overridden by environment variables:
    - STREAMWARDEN_DEBUG: If set, enables DEBUG level logging

    Args:
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        log_file: Path to the log file.
        command: Name of the CLI command for context (bound to all entries).

    Returns:
        A FilteringBoundLogger instance configured for CLI logging.
    """
    logger = _create_logger(
        log_file,
        log_level=_log_level_from_string(level, respect_env=True),
        log_format=log_format,
    ).bind(component="cli", pid=os.getpid())

    if command:
        return logger.bind(command=command)
    return logger


def rotate_log_file(path: Path, max_bytes: int) -> bool:
    """Rotate a plain log file written by a child process.

    Renames ``path`` to ``path.1`` (replacing any previous backup) when it
    exceeds ``max_bytes``. Used for output files that a subprocess writes
    directly and that therefore cannot use a RotatingFileHandler.

    Args:
        path: The log file.
        max_bytes: Size threshold.

    Returns:
        True if the file was rotated.
    """
    try:
        size = path.stat().st_size
    except OSError:
        return False
    if size <= max_bytes:
        return False
    try:
        _ = path.replace(path.with_name(f"{path.name}.1"))
    except OSError:
        return False
    return True


def tail_file(path: Path, lines: int = 20) -> str:
    """Return the last ``lines`` lines of a text file, or "" if unreadable."""
    try:
        with path.open("rb") as f:
            _ = f.seek(0, os.SEEK_END)
            size = f.tell()
            _ = f.seek(max(0, size - 64 * 1024))
            data = f.read()
    except OSError:
        return ""
    text = data.decode("utf-8", errors="replace")
    return "\n".join(text.splitlines()[-lines:])
