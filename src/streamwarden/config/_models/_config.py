# pyright: reportExplicitAny=false, reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Configuration container with typed access.

This module provides the main Config class that serves as the primary
interface for accessing streamwarden configuration values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Self, overload

import tomli_w
from pydantic import BaseModel, ConfigDict, PrivateAttr

from streamwarden.config._defaults import DEFAULT_CONFIG
from streamwarden.config._loader import (
    copy_value,
    deep_merge,
    parse_env_vars,
    read_toml_file,
)
from streamwarden.config._models._common import ConfigSource, ConfigSourceName

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from streamwarden.config._models._logging import LoggingConfig
    from streamwarden.config._models._media import (
        DevicesConfig,
        EncoderConfig,
        RelayConfig,
    )
    from streamwarden.config._models._paths import PathsConfig
    from streamwarden.config._models._runtime import (
        ErrorsConfig,
        LocksConfig,
        StartupConfig,
        SupervisorConfig,
    )
    from streamwarden.config._models._watchdog import WatchdogConfig
    from streamwarden.config._validation import ConfigSchema


class Config(BaseModel):
    """Configuration container with typed access.

    This class provides immutable, type-safe access to the merged
    configuration. Use factory methods to create instances rather than the
    constructor.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    _data: dict[str, Any] = PrivateAttr(default_factory=dict)
    _sources: tuple[ConfigSource, ...] = PrivateAttr(default=())
    _sections: Any = PrivateAttr(default=None)

    def __init__(
        self,
        *,
        _data: dict[str, Any] | None = None,
        _sources: tuple[ConfigSource, ...] = (),
        _sections: ConfigSchema | None = None,
    ) -> None:
        """Initialize configuration container.

        This constructor is intended for internal use. Use factory methods
        like from_dict(), from_file(), or load() to create Config instances.

        Args:
            _data: The complete merged configuration dictionary.
            _sources: Sources that contributed to this configuration.
            _sections: Parsed configuration sections.
        """
        from streamwarden.config._validation import (  # noqa: PLC0415
            ConfigSchema,
        )

        super().__init__()
        self._data = _data if _data is not None else copy_value(DEFAULT_CONFIG)
        self._sources = _sources
        self._sections = _sections if _sections is not None else ConfigSchema()

    @classmethod
    def _build(
        cls,
        merged: dict[str, Any],
        sources: tuple[ConfigSource, ...],
    ) -> Self:
        # Deferred import to avoid circular dependency
        from streamwarden.config._validation import parse_config  # noqa: PLC0415

        return cls(_data=merged, _sources=sources, _sections=parse_config(merged))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create configuration from a dictionary merged over the defaults.

        Raises:
            ConfigValidationError: If the merged configuration is invalid.
        """
        return cls._build(deep_merge(DEFAULT_CONFIG, data), ())

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Load configuration from a single TOML file merged over the defaults.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigLoadError: If the file cannot be parsed.
            ConfigValidationError: If validation fails.
        """
        data = read_toml_file(path)
        source = ConfigSource(
            name=ConfigSourceName.FILE,
            path=path,
            exists=True,
            values=data,
        )
        return cls._build(deep_merge(DEFAULT_CONFIG, data), (source,))

    @classmethod
    def load(
        cls,
        *,
        config_path: Path | None = None,
        include_env: bool = True,
        cli_overrides: dict[str, Any] | None = None,
    ) -> Self:
        """Load merged configuration from all sources.

        Merges in precedence order defaults -> system -> user (or the
        explicit file) -> env -> cli.

        Args:
            config_path: Explicit configuration file replacing the system and
                user files.
            include_env: Include ``STREAMWARDEN_*`` environment variables.
            cli_overrides: Values set by command-line flags.

        Returns:
            Merged configuration object.

        Raises:
            FileNotFoundError: If ``config_path`` does not exist.
            ConfigLoadError: If config files cannot be parsed.
            ConfigValidationError: If merged config fails validation.
        """
        from streamwarden.config._discovery import discover_sources  # noqa: PLC0415

        sources = discover_sources(
            config_path=config_path,
            include_env=include_env,
            cli_overrides=cli_overrides,
        )

        merged: dict[str, Any] = {}
        loaded_sources: list[ConfigSource] = []

        # Sources are discovered highest-to-lowest, merge lowest first
        for source in reversed(sources):
            values: dict[str, Any] = {}

            if source.name == ConfigSourceName.ENV:
                values = parse_env_vars()
            elif source.path is not None:
                if source.exists or source.name == ConfigSourceName.FILE:
                    values = read_toml_file(source.path)
            else:
                values = source.values

            loaded_sources.append(
                ConfigSource(
                    name=source.name,
                    path=source.path,
                    exists=source.exists or bool(values),
                    values=values,
                )
            )

            if values:
                merged = deep_merge(merged, values)

        return cls._build(merged, tuple(reversed(loaded_sources)))

    @property
    def sources(self) -> list[ConfigSource]:
        """Return the sources that contributed to this configuration."""
        return list(self._sources)

    @property
    def logging(self) -> LoggingConfig:
        """Return the logging configuration section."""
        return self._sections.logging

    @property
    def paths(self) -> PathsConfig:
        """Return the filesystem layout section."""
        return self._sections.paths

    @property
    def relay(self) -> RelayConfig:
        """Return the relay server section."""
        return self._sections.relay

    @property
    def encoder(self) -> EncoderConfig:
        """Return the default encoder settings section."""
        return self._sections.encoder

    @property
    def devices(self) -> DevicesConfig:
        """Return the device naming and override section."""
        return self._sections.devices

    @property
    def startup(self) -> StartupConfig:
        """Return the start sequencing section."""
        return self._sections.startup

    @property
    def locks(self) -> LocksConfig:
        """Return the lock manager section."""
        return self._sections.locks

    @property
    def supervisor(self) -> SupervisorConfig:
        """Return the stream supervisor section."""
        return self._sections.supervisor

    @property
    def watchdog(self) -> WatchdogConfig:
        """Return the resource watchdog section."""
        return self._sections.watchdog

    @property
    def errors(self) -> ErrorsConfig:
        """Return the error handling section."""
        return self._sections.errors

    @overload
    def get(self, key: str) -> Any: ...

    @overload
    def get[T](self, key: str, default: T) -> Any | T: ...

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation key.

        Examples:
            >>> config.get("relay.rtsp_port")
            8554
            >>> config.get("nonexistent", "fallback")
            'fallback'
        """
        current: Any = self._data

        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]

        return current

    def to_dict(self, *, include_defaults: bool = True) -> dict[str, Any]:
        """Convert configuration to a dictionary.

        Args:
            include_defaults: Whether to include default values. If False,
                only values that differ from defaults are included.
        """
        if include_defaults:
            return copy_value(self._data)
        return _diff_from_defaults(self._data, DEFAULT_CONFIG)

    def to_toml(self, *, include_defaults: bool = False) -> str:
        """Convert configuration to a TOML string."""
        return tomli_w.dumps(self.to_dict(include_defaults=include_defaults))


def _diff_from_defaults(
    data: dict[str, Any],
    defaults: dict[str, Any],
) -> dict[str, Any]:
    """Extract values that differ from defaults."""
    result: dict[str, Any] = {}

    for key, value in data.items():
        if key not in defaults:
            result[key] = copy_value(value)
        elif isinstance(value, dict) and isinstance(defaults[key], dict):
            nested_diff = _diff_from_defaults(value, defaults[key])
            if nested_diff:
                result[key] = nested_diff
        elif value != defaults[key]:
            result[key] = copy_value(value)

    return result
