"""Data models for the resource watchdog.

- TriggerKind: Why a recovery was requested
- Trigger: One recovery request with its human-readable reason
- RecoveryLevel: Escalation tiers
- ResourceSample: One reading of the relay server's resource usage
- RecoveryOutcome: Result of one recovery attempt
- CheckResult: Result of one watchdog tick
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum


class TriggerKind(StrEnum):
    """Conditions that request a recovery, in evaluation order."""

    NOT_RUNNING = "not_running"
    EMERGENCY = "emergency"
    TREND = "trend"
    SUSTAINED_CPU = "sustained_cpu"
    SUSTAINED_MEMORY = "sustained_memory"
    SCHEDULED = "scheduled"


@dataclass(frozen=True, slots=True)
class Trigger:
    """A request for recovery.

    Attributes:
        kind: Triggering condition.
        reason: Description with the offending reading.
    """

    kind: TriggerKind
    reason: str

    @property
    def emergency(self) -> bool:
        """Emergency triggers bypass the restart cooldown."""
        return self.kind is TriggerKind.EMERGENCY


class RecoveryLevel(IntEnum):
    """Escalation tiers.

    - STANDARD: Restart the relay server only
    - THOROUGH: Also stop encoders and stray relay processes, verify health
    - AGGRESSIVE: Tear down the whole chain, force-kill, start fresh
    - REBOOT: Reboot consideration after repeated failures
    """

    STANDARD = 1
    THOROUGH = 2
    AGGRESSIVE = 3
    REBOOT = 4


@dataclass(frozen=True, slots=True)
class ResourceSample:
    """Resource usage of the relay server at one point in time.

    Percentages are whole percent; CPU is relative to one core, so the
    combined figure may exceed 100.

    Attributes:
        pid: Relay server PID.
        cpu: Relay CPU usage.
        combined_cpu: Relay plus encoder CPU usage.
        memory: Relay memory usage.
        fds: Open file descriptors of the relay.
        uptime: Seconds since the relay started.
        encoders: Encoder processes included in ``combined_cpu``.
    """

    pid: int
    cpu: int
    combined_cpu: int
    memory: int
    fds: int
    uptime: int
    encoders: int = 0


@dataclass(frozen=True, slots=True)
class RecoveryOutcome:
    """Result of one recovery attempt.

    Attributes:
        trigger: What requested the recovery.
        level: Level that ran, or None if the attempt was skipped.
        success: Whether the relay came back healthy.
        skipped: Why no recovery ran (``cooldown``, ``lock_busy``).
        rebooted: Whether a host reboot was issued.
        snapshot: State key of the diagnostic snapshot written.
        error: Failure description.
    """

    trigger: Trigger
    level: RecoveryLevel | None = None
    success: bool = False
    skipped: str | None = None
    rebooted: bool = False
    snapshot: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Result of one watchdog tick.

    Attributes:
        sample: Readings, or None if the relay server was not running.
        trigger: Condition found, if any.
        outcome: Recovery attempt made for ``trigger``, if any.
    """

    sample: ResourceSample | None
    trigger: Trigger | None = None
    outcome: RecoveryOutcome | None = None

    @property
    def critical(self) -> bool:
        """Whether the relay is down or in an emergency state."""
        return self.trigger is not None and self.trigger.kind in (
            TriggerKind.NOT_RUNNING,
            TriggerKind.EMERGENCY,
        )
