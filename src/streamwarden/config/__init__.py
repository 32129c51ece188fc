"""streamwarden configuration.

This module provides the public API for configuration management,
including loading, validation, and typed access to configuration values.

Example:
    >>> from streamwarden.config import Config
    >>> config = Config.load()
    >>> config.relay.rtsp_port
    8554
"""

from streamwarden.exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
)

from ._defaults import DEFAULT_CONFIG
from ._discovery import discover_sources, get_system_config_path, get_user_config_path
from ._load import safe_load_config
from ._loader import deep_merge, parse_env_value, parse_env_vars, read_toml_file
from ._models import (
    Codec,
    Config,
    ConfigSource,
    ConfigSourceName,
    DeviceOverride,
    DevicesConfig,
    EncoderConfig,
    ErrorMode,
    ErrorsConfig,
    LocksConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    PathsConfig,
    RelayConfig,
    StartupConfig,
    SupervisorConfig,
    WatchdogConfig,
)
from ._validation import ValidationIssue, validate_config

__all__ = [
    "DEFAULT_CONFIG",
    "Codec",
    "Config",
    "ConfigError",
    "ConfigLoadError",
    "ConfigSource",
    "ConfigSourceName",
    "ConfigValidationError",
    "DeviceOverride",
    "DevicesConfig",
    "EncoderConfig",
    "ErrorMode",
    "ErrorsConfig",
    "LocksConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PathsConfig",
    "RelayConfig",
    "StartupConfig",
    "SupervisorConfig",
    "ValidationIssue",
    "WatchdogConfig",
    "deep_merge",
    "discover_sources",
    "get_system_config_path",
    "get_user_config_path",
    "parse_env_value",
    "parse_env_vars",
    "read_toml_file",
    "safe_load_config",
    "validate_config",
]
