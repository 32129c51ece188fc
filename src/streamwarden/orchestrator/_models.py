"""Reports returned by orchestrator operations.

All reports are frozen dataclasses so they serialize directly with orjson
for ``status --json`` and recovery snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from streamwarden.supervisor import TerminationResult
    from streamwarden.utils import ProcessUsage


@dataclass(frozen=True, slots=True)
class SweepReport:
    """What one cleanup sweep removed.

    Attributes:
        enhanced: Whether the sweep also stopped a live relay server.
        supervisors: Supervisor records that were terminated.
        encoders: Encoder records that were terminated.
        orphans: PIDs of unrecorded encoders that were killed.
        relay_stopped: Whether a live relay server was stopped.
        relay_record_removed: Whether a dead relay record was dropped.
        files_removed: Number of stale coordination files deleted.
    """

    enhanced: bool
    supervisors: int = 0
    encoders: int = 0
    orphans: tuple[int, ...] = ()
    relay_stopped: bool = False
    relay_record_removed: bool = False
    files_removed: int = 0


@dataclass(frozen=True, slots=True)
class StreamOutcome:
    """Result of launching and validating the stream of one device.

    Attributes:
        device: Device name.
        identity: Claimed stream identity, if the supervisor got that far.
        supervisor_pid: PID of the launched supervisor.
        validated: Whether the relay server reported the stream ready.
        error: Why the stream failed, if it did.
    """

    device: str
    identity: str | None = None
    supervisor_pid: int | None = None
    validated: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class StartReport:
    """Outcome of :meth:`Orchestrator.start`."""

    devices_detected: int
    streams: tuple[StreamOutcome, ...]
    restart_scenario: bool
    relay_pid: int
    sweep: SweepReport

    @property
    def validated(self) -> int:
        return sum(1 for stream in self.streams if stream.validated)

    @property
    def summary(self) -> str:
        """Return the ``N/M streams`` line shown after a start."""
        return f"{self.validated}/{self.devices_detected} streams"


@dataclass(frozen=True, slots=True)
class StopReport:
    """Outcome of :meth:`Orchestrator.stop`.

    Attributes:
        locked: Whether the system lock was held during the stop.
        supervisors: Supervisor records that were terminated.
        encoders: Encoder records that were terminated.
        orphans: PIDs of unrecorded encoders that were killed.
        relay: Result of the relay server termination.
    """

    locked: bool
    supervisors: int
    encoders: int
    orphans: tuple[int, ...]
    relay: TerminationResult


@dataclass(frozen=True, slots=True)
class RelayStatus:
    """Observed state of the relay server.

    Attributes:
        pid: Recorded PID, alive or not.
        running: Whether the recorded process is alive.
        usage: Resource readings of the running process.
        api_reachable: Control API answer; None when not queried.
        strays: Unrecorded relay processes running our configuration.
    """

    pid: int | None
    running: bool
    usage: ProcessUsage | None = None
    api_reachable: bool | None = None
    strays: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class StreamStatus:
    """Observed state of one stream identity.

    Attributes:
        identity: Stream identity.
        device_ref: Device the claim was made for.
        claim_holder: PID of the live claim holder.
        supervisor_pid: Recorded supervisor PID.
        supervisor_alive: Whether the supervisor record is alive.
        encoder_pid: Recorded encoder PID.
        encoder_alive: Whether the encoder record is alive.
        ready: Relay server readiness; None when not queried.
        url: RTSP URL the stream is published on.
    """

    identity: str
    device_ref: str | None
    claim_holder: int | None
    supervisor_pid: int | None
    supervisor_alive: bool
    encoder_pid: int | None
    encoder_alive: bool
    ready: bool | None
    url: str

    @property
    def state(self) -> str:
        if self.encoder_alive:
            return "running"
        if self.supervisor_alive:
            return "restarting"
        if self.claim_holder is not None:
            return "claimed"
        return "stopped"


@dataclass(frozen=True, slots=True)
class SystemStatus:
    """Best-effort current state, re-derived on every call.

    Attributes:
        relay: Relay server state.
        streams: Every known stream identity.
        devices: Currently attached capture devices.
        lock_holder: PID holding the system lock, if any.
        cleanup_in_progress: Whether a cleanup sweep is running.
        restart_marker_age: Age of the restart marker, if present.
        orphan_encoders: PIDs of unrecorded encoders.
    """

    relay: RelayStatus
    streams: tuple[StreamStatus, ...]
    devices: int
    lock_holder: int | None
    cleanup_in_progress: bool
    restart_marker_age: float | None
    orphan_encoders: tuple[int, ...] = ()

    @property
    def running_streams(self) -> int:
        return sum(1 for stream in self.streams if stream.encoder_alive)
