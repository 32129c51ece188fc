"""System-wide orchestration: cleanup sweeps, start, stop, restart and status.

Key Components:
    - Orchestrator: Start/stop/restart/status and the recovery primitives
    - CleanupSweep: Terminates known processes and removes stale files
    - SupervisorLauncher / ProcessLauncher: Starts supervisor processes
    - StartReport / StopReport / SystemStatus: Operation results
"""

from ._launcher import ProcessLauncher, SupervisorLauncher
from ._models import (
    RelayStatus,
    StartReport,
    StopReport,
    StreamOutcome,
    StreamStatus,
    SweepReport,
    SystemStatus,
)
from ._orchestrator import Orchestrator
from ._sweep import CleanupSweep

__all__ = [
    "CleanupSweep",
    "Orchestrator",
    "ProcessLauncher",
    "RelayStatus",
    "StartReport",
    "StopReport",
    "StreamOutcome",
    "StreamStatus",
    "SupervisorLauncher",
    "SweepReport",
    "SystemStatus",
]
