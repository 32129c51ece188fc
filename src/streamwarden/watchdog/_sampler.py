"""Resource sampling of the relay server and its encoders."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

from streamwarden.utils import combined_cpu_percent, process_usage

from ._models import ResourceSample

if TYPE_CHECKING:
    from ._protocol import RecoveryActions

CPU_SAMPLE_INTERVAL: float = 1.0


@final
class ResourceSampler:
    """Reads CPU, memory, descriptor and uptime figures with psutil.

    Sampling blocks for up to twice ``interval``; call it from a worker
    thread.
    """

    __slots__ = ("_actions", "_interval")

    def __init__(
        self, actions: RecoveryActions, *, interval: float = CPU_SAMPLE_INTERVAL
    ) -> None:
        self._actions = actions
        self._interval = interval

    def sample(self) -> ResourceSample | None:
        """Return current readings, or None if the relay server is not running."""
        pid = self._actions.relay_pid()
        if pid is None:
            return None
        usage = process_usage(pid, interval=self._interval)
        if usage is None:
            return None
        encoders = self._actions.encoder_processes()
        encoder_cpu = (
            combined_cpu_percent(encoders, self._interval) if encoders else 0.0
        )
        return ResourceSample(
            pid=pid,
            cpu=int(usage.cpu_percent),
            combined_cpu=int(usage.cpu_percent + encoder_cpu),
            memory=int(usage.memory_percent),
            fds=usage.fds,
            uptime=int(usage.uptime),
            encoders=len(encoders),
        )
