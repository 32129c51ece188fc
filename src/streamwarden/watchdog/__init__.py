"""Resource watchdog for the relay server.

The watchdog samples the relay server's CPU, memory, descriptor and uptime
figures, decides whether a recovery is due and escalates through four
levels, from a plain relay restart to a host reboot. Its escalation state
lives in the state store so it survives the watchdog's own restart.

Key Components:
    Watchdog: The polling loop
    ResourceSampler: psutil readings of the relay and its encoders
    TriggerEvaluator: Emergency, trend, sustained and scheduled triggers
    RecoveryManager: Escalation, recovery levels, snapshots and reboot
    RecoveryState: Persisted escalation counters
    RecoveryActions: Process operations the watchdog drives
"""

from ._models import (
    CheckResult,
    RecoveryLevel,
    RecoveryOutcome,
    ResourceSample,
    Trigger,
    TriggerKind,
)
from ._protocol import RecoveryActions
from ._recovery import SNAPSHOTS_DIR, RecoveryManager
from ._sampler import ResourceSampler
from ._state import RecoveryState, recovery_key
from ._triggers import (
    CPU_HISTORY_KEY,
    MEMORY_HISTORY_KEY,
    TriggerEvaluator,
    current_key,
    trend_rate,
)
from ._watchdog import Watchdog

__all__ = [
    "CPU_HISTORY_KEY",
    "MEMORY_HISTORY_KEY",
    "SNAPSHOTS_DIR",
    "CheckResult",
    "RecoveryActions",
    "RecoveryLevel",
    "RecoveryManager",
    "RecoveryOutcome",
    "RecoveryState",
    "ResourceSample",
    "ResourceSampler",
    "Trigger",
    "TriggerEvaluator",
    "TriggerKind",
    "Watchdog",
    "current_key",
    "recovery_key",
    "trend_rate",
]
