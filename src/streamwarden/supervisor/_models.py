"""Data models for stream supervision.

This module defines the core data types of a stream supervisor:
- StreamPhase: States of the supervision state machine
- StopReason: Why a supervisor stopped for good
- StreamEventType: Types of lifecycle events
- StreamEvent: Immutable event records
- StreamSpec: What a supervisor streams
- StreamState: Mutable runtime state
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from streamwarden.devices import SettingsResolver, base_identity

if TYPE_CHECKING:
    from streamwarden.config import Config
    from streamwarden.devices import DeviceInfo, EncoderSettings


class StreamPhase(StrEnum):
    """Stream supervisor states.

    - CLAIMING: Acquiring an exclusive stream identity
    - STARTING: Spawning the encoder
    - RUNNING: Encoder running, output being drained
    - BACKOFF: Encoder exited, waiting before the next start
    - STOPPED: Supervisor finished and will not spawn again
    """

    CLAIMING = "claiming"
    STARTING = "starting"
    RUNNING = "running"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class StopReason(StrEnum):
    """Why a supervisor left its loop."""

    ALREADY_RUNNING = "already_running"
    CLEANUP = "cleanup"
    DEVICE_REMOVED = "device_removed"
    CLAIM_LOST = "claim_lost"
    RECORD_REPLACED = "record_replaced"
    RESTART_CAP = "restart_cap"
    SIGNAL = "signal"


class StreamEventType(StrEnum):
    """Types of stream lifecycle events.

    - STARTED: Encoder process has been spawned
    - EXITED: Encoder process exited
    - RESTARTING: Encoder will be started again after a delay
    - STOPPED: Supervisor stopped for good
    """

    STARTED = "started"
    EXITED = "exited"
    RESTARTING = "restarting"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """Immutable stream lifecycle event.

    Attributes:
        identity: Stream identity that generated the event.
        event_type: Type of lifecycle event.
        timestamp: ISO 8601 formatted timestamp.
        pid: Encoder process ID if applicable.
        exit_code: Exit code if the encoder terminated.
        run_time: Seconds the encoder ran, for ``EXITED``.
        message: Optional human-readable message.
    """

    identity: str
    event_type: StreamEventType
    timestamp: str
    pid: int | None = None
    exit_code: int | None = None
    run_time: float | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class StreamSpec:
    """What one supervisor streams.

    Attributes:
        device: The capture device.
        base_identity: Identity tried first when claiming.
        settings: Resolved encoder settings for the device.
    """

    device: DeviceInfo
    base_identity: str
    settings: EncoderSettings


@dataclass(slots=True)
class StreamState:
    """Mutable runtime state of a supervisor.

    Attributes:
        phase: Current state machine phase.
        identity: Claimed stream identity, once claimed.
        pid: PID of the running encoder, if any.
        restart_count: Restarts since the supervisor started.
        short_runs: Consecutive runs shorter than the short-run threshold.
        last_exit_code: Exit code of the last encoder run.
        last_run_time: Seconds the last encoder run lasted.
        started_at: ISO 8601 timestamp of the last encoder start.
        stop_reason: Why the supervisor stopped, once stopped.
    """

    phase: StreamPhase = StreamPhase.CLAIMING
    identity: str | None = None
    pid: int | None = None
    restart_count: int = 0
    short_runs: int = 0
    last_exit_code: int | None = None
    last_run_time: float | None = None
    started_at: str | None = None
    stop_reason: StopReason | None = None


def stream_spec_for(device: DeviceInfo, config: Config) -> StreamSpec:
    """Build the supervisor spec of ``device`` from configuration."""
    resolver = SettingsResolver(config.encoder, config.devices)
    return StreamSpec(
        device=device,
        base_identity=base_identity(device, config.devices.aliases),
        settings=resolver.resolve(device),
    )
