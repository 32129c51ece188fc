"""Launching stream supervisors as independent OS processes."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Protocol, final

import psutil

from streamwarden.utils import spawn_detached

if TYPE_CHECKING:
    from pathlib import Path

    from streamwarden.devices import DeviceInfo


class SupervisorLauncher(Protocol):
    """Starts one supervisor per device and reports whether it still runs."""

    def launch(self, device: DeviceInfo) -> int | None:
        """Start the supervisor of ``device``.

        Returns:
            The supervisor PID, or None if it could not be started.
        """
        ...

    def is_alive(self, pid: int) -> bool:
        """Return whether the supervisor ``pid`` is still running."""
        ...


@final
class ProcessLauncher:
    """Runs each supervisor as ``python -m streamwarden.cli supervise``."""

    __slots__ = ("_config_file", "_python")

    def __init__(
        self,
        *,
        config_file: Path | None = None,
        python: str = sys.executable,
    ) -> None:
        self._config_file = config_file
        self._python = python

    def command(self, device: DeviceInfo) -> tuple[str, ...]:
        argv = [self._python, "-m", "streamwarden.cli"]
        if self._config_file is not None:
            argv.extend(["--config", str(self._config_file)])
        argv.extend(["supervise", "--device", device.name])
        return tuple(argv)

    def launch(self, device: DeviceInfo) -> int | None:
        return spawn_detached(self.command(device))

    def is_alive(self, pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False
