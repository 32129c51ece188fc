"""Configuration models."""

from ._common import (
    Codec,
    ConfigSource,
    ConfigSourceName,
    ErrorMode,
    LogFormat,
    LogLevel,
)
from ._config import Config
from ._logging import LoggingConfig
from ._media import DeviceOverride, DevicesConfig, EncoderConfig, RelayConfig
from ._paths import PathsConfig
from ._runtime import ErrorsConfig, LocksConfig, StartupConfig, SupervisorConfig
from ._watchdog import WatchdogConfig

__all__ = [
    "Codec",
    "Config",
    "ConfigSource",
    "ConfigSourceName",
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
    "WatchdogConfig",
]
