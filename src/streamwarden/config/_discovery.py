"""Configuration source discovery.

This module determines which configuration files apply and in which order,
using the platform-specific user config location and the system-wide file
under ``/etc``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import platformdirs

from ._defaults import DEFAULT_CONFIG
from ._models._common import ConfigSource, ConfigSourceName

SYSTEM_CONFIG_PATH = Path("/etc/streamwarden/config.toml")


def get_user_config_path() -> Path:
    """Get the platform-specific user config file path.

    - Linux: ``~/.config/streamwarden/config.toml``
    - macOS: ``~/Library/Application Support/streamwarden/config.toml``

    The path is returned regardless of whether the file exists.
    """
    return platformdirs.user_config_path("streamwarden") / "config.toml"


def get_system_config_path() -> Path:
    """Get the system-wide config file path."""
    return SYSTEM_CONFIG_PATH


def _file_exists(path: Path) -> bool:
    """Check if a file exists, handling permission errors gracefully."""
    try:
        return path.is_file()
    except OSError:
        return False


def discover_sources(
    *,
    config_path: Path | None = None,
    include_env: bool = True,
    cli_overrides: dict[str, Any] | None = None,  # pyright: ignore[reportExplicitAny]
) -> list[ConfigSource]:
    """Discover all configuration sources.

    Sources are returned in precedence order (highest first). File-based
    sources are checked for existence but not read.

    Args:
        config_path: Explicit config file. When given it replaces the user
            and system files.
        include_env: Include environment variables as a source.
        cli_overrides: Values set by command-line flags.

    Returns:
        List of ConfigSource objects in precedence order (highest first).
        Sources that don't exist are still included with exists=False.
    """
    sources: list[ConfigSource] = []

    if cli_overrides is not None:
        sources.append(
            ConfigSource(
                name=ConfigSourceName.CLI,
                path=None,
                exists=bool(cli_overrides),
                values=cli_overrides,
            )
        )

    if include_env:
        sources.append(
            ConfigSource(
                name=ConfigSourceName.ENV,
                path=None,
                exists=True,  # Actual values parsed during loading phase
                values={},
            )
        )

    if config_path is not None:
        sources.append(
            ConfigSource(
                name=ConfigSourceName.FILE,
                path=config_path,
                exists=_file_exists(config_path),
                values={},
            )
        )
    else:
        for name, path in (
            (ConfigSourceName.USER, get_user_config_path()),
            (ConfigSourceName.SYSTEM, get_system_config_path()),
        ):
            sources.append(
                ConfigSource(
                    name=name,
                    path=path,
                    exists=_file_exists(path),
                    values={},
                )
            )

    sources.append(
        ConfigSource(
            name=ConfigSourceName.DEFAULT,
            path=None,
            exists=True,
            values=DEFAULT_CONFIG,
        )
    )

    return sources
