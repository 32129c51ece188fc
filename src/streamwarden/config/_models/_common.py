"""Enums shared by the configuration sections, and the ConfigSource record."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class LogLevel(StrEnum):
    """Minimum level written to the log files."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Line format of the log files."""

    JSON = "json"
    TEXT = "text"


class Codec(StrEnum):
    """Audio codecs the encoder can publish."""

    OPUS = "opus"
    AAC = "aac"
    MP3 = "mp3"


class ErrorMode(StrEnum):
    """How configuration and per-device failures are handled.

    - FAIL_SAFE: log, fall back to defaults, continue with remaining devices
    - FAIL_FAST: abort the current operation on the first failure
    """

    FAIL_SAFE = "fail-safe"
    FAIL_FAST = "fail-fast"


class ConfigSourceName(StrEnum):
    """Where configuration values come from, highest precedence first.

    FILE is an explicit ``--config`` file; when one is given, USER and SYSTEM
    are not consulted.
    """

    CLI = "cli"
    ENV = "env"
    FILE = "file"
    USER = "user"
    SYSTEM = "system"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class ConfigSource:
    """One layer of the effective configuration.

    Attributes:
        name: Which layer this is.
        path: TOML file behind the layer; None for CLI, ENV and DEFAULT.
        exists: Whether the file exists or the layer carries any values.
        values: Raw, unvalidated values of the layer.
    """

    name: ConfigSourceName
    path: Path | None
    exists: bool
    values: dict[str, Any]  # pyright: ignore[reportExplicitAny]
