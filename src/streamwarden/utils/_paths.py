from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import platformdirs

if TYPE_CHECKING:
    from streamwarden.config import Config, PathsConfig

_APP_NAME = "streamwarden"


def _is_root() -> bool:
    return os.geteuid() == 0


def get_run_dir(paths: PathsConfig) -> Path:
    """Get the directory holding PID files, locks, claims and markers.

    ``/run/streamwarden`` when running as root, otherwise the user runtime
    directory.
    """
    if paths.run_dir:
        return Path(paths.run_dir)
    if _is_root():
        return Path("/run") / _APP_NAME
    return platformdirs.user_runtime_path(_APP_NAME)


def get_state_dir(paths: PathsConfig) -> Path:
    """Get the directory holding persisted watchdog state and snapshots."""
    if paths.state_dir:
        return Path(paths.state_dir)
    if _is_root():
        return Path("/var/lib") / _APP_NAME
    return platformdirs.user_state_path(_APP_NAME)


def get_log_dir(paths: PathsConfig) -> Path:
    """Get the directory holding all log files."""
    if paths.log_dir:
        return Path(paths.log_dir)
    if _is_root():
        return Path("/var/log") / _APP_NAME
    return platformdirs.user_log_path(_APP_NAME)


def get_fallback_dir(paths: PathsConfig) -> Path:
    """Get the secondary location used when a primary directory is unusable."""
    if paths.fallback_dir:
        return Path(paths.fallback_dir)
    return Path(tempfile.gettempdir()) / _APP_NAME


def get_system_log_file(config: Config) -> Path:
    """Get the path to the system log file."""
    if config.logging.file:
        return Path(config.logging.file)
    return get_log_dir(config.paths) / "streamwarden.log"


def get_recovery_log_file(config: Config) -> Path:
    """Get the path to the watchdog recovery log."""
    return get_log_dir(config.paths) / "recovery.log"


def get_relay_log_file(config: Config) -> Path:
    """Get the path to the relay server's captured output."""
    return get_log_dir(config.paths) / "relay.log"


def get_stream_log_file(config: Config, identity: str) -> Path:
    """Get the path to the isolated log of one stream.

    Args:
        config: Loaded configuration.
        identity: The stream identity.

    Returns:
        Path to ``streams/<identity>.log`` inside the log directory.
    """
    return get_log_dir(config.paths) / "streams" / f"{identity}.log"


def get_relay_config_file(config: Config) -> Path:
    """Get the path of the generated relay server configuration."""
    if config.relay.config_file:
        return Path(config.relay.config_file)
    return get_run_dir(config.paths) / "relay.yml"
