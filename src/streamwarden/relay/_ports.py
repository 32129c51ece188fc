"""Port conflict detection for the relay server's listeners."""

from __future__ import annotations

import contextlib
import socket
from typing import TYPE_CHECKING

import psutil

from streamwarden.exceptions import PortConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable


def _bind_probe(port: int) -> bool:
    """Return whether ``port`` is bound, by trying to bind it ourselves."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("", port))
        except OSError:
            return True
    return False


def port_owners(ports: Iterable[int]) -> dict[int, int | None]:
    """Return the listening ports among ``ports`` mapped to their owner PID.

    The owner is None when the kernel does not disclose it (another user's
    socket without privileges).
    """
    wanted = set(ports)
    owners: dict[int, int | None] = {}
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.AccessDenied, PermissionError):
        for port in sorted(wanted):
            if _bind_probe(port):
                owners[port] = None
        return owners

    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr:
            continue
        port = conn.laddr.port
        if port in wanted and owners.get(port) is None:
            owners[port] = conn.pid
    return owners


def check_ports(ports: Iterable[int]) -> None:
    """Fail if any of ``ports`` is already bound.

    Raises:
        PortConflictError: Listing every conflicting port and, where known,
            the process holding it.
    """
    owners = port_owners(ports)
    if not owners:
        return
    details: list[str] = []
    for port, pid in sorted(owners.items()):
        name = None
        if pid is not None:
            with contextlib.suppress(psutil.Error):
                name = psutil.Process(pid).name()
        holder = f"{name or 'pid'} {pid}" if pid is not None else "unknown process"
        details.append(f"{port} ({holder})")
    msg = f"Ports already in use: {', '.join(details)}"
    raise PortConflictError(msg, ports=tuple(sorted(owners)))
