"""Relay server (MediaMTX) lifecycle, configuration and control API."""

from ._client import PATHS_GET, PATHS_LIST, RelayClient
from ._config import (
    PUBLISHER_PATHS,
    relay_config_data,
    render_relay_config,
    write_relay_config,
)
from ._ports import check_ports, port_owners
from ._process import RelayServer

__all__ = [
    "PATHS_GET",
    "PATHS_LIST",
    "PUBLISHER_PATHS",
    "RelayClient",
    "RelayServer",
    "check_ports",
    "port_owners",
    "relay_config_data",
    "render_relay_config",
    "write_relay_config",
]
