"""Relay server configuration generation.

The relay server accepts any publisher on a path made of letters, digits,
``_`` and ``-``; encoders push to ``rtsp://<host>:<rtsp_port>/<identity>``
and the relay serves the stream back on the same URL. Only the RTSP, API
and metrics listeners are enabled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from streamwarden.utils import get_relay_config_file

if TYPE_CHECKING:
    from pathlib import Path

    from streamwarden.config import RelayConfig
    from streamwarden.runtime import Runtime

PUBLISHER_PATHS = "~^[a-zA-Z0-9_-]+$"

# MediaMTX log levels
_LOG_LEVELS = {"debug": "debug", "info": "info", "warning": "warn", "error": "error"}


def relay_config_data(relay: RelayConfig) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Return the relay server configuration as a mapping."""
    return {
        "logLevel": _LOG_LEVELS.get(relay.log_level.value, "info"),
        "readTimeout": "30s",
        "writeTimeout": "30s",
        "api": True,
        "apiAddress": f":{relay.api_port}",
        "metrics": True,
        "metricsAddress": f":{relay.metrics_port}",
        "rtsp": True,
        "rtspAddress": f":{relay.rtsp_port}",
        "rtspTransports": ["tcp", "udp"],
        "rtmp": False,
        "hls": False,
        "webrtc": False,
        "srt": False,
        "paths": {
            PUBLISHER_PATHS: {
                "source": "publisher",
                "sourceOnDemand": False,
            },
        },
    }


def render_relay_config(relay: RelayConfig) -> str:
    """Render the relay server configuration as YAML."""
    header = "# Generated by streamwarden; changes are overwritten on start.\n"
    body = yaml.safe_dump(
        relay_config_data(relay), default_flow_style=False, sort_keys=False
    )
    return header + body


def write_relay_config(runtime: Runtime) -> Path:
    """Write the relay configuration atomically under the config lock.

    Returns:
        Path of the written file.

    Raises:
        LockTimeoutError: If another writer holds the config lock.
        OSError: If the file cannot be written.
    """
    config = runtime.config
    path = get_relay_config_file(config)
    text = render_relay_config(config.relay)
    with runtime.locks.locked(
        config.paths.config_lock, config.locks.acquisition_timeout
    ):
        runtime.run_store.write(str(path), text.rstrip("\n"))
    runtime.logger.info("relay_config_written", path=str(path))
    return path
