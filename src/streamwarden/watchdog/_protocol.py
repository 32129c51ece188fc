"""Protocol definitions for the resource watchdog.

RecoveryActions is the subset of the orchestrator the watchdog drives; the
orchestrator implements it structurally.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from streamwarden.coordination import ProcessRecord
    from streamwarden.orchestrator import StreamOutcome
    from streamwarden.supervisor import TerminationResult


class RecoveryActions(Protocol):
    """Process-level operations used by sampling and recovery levels."""

    def relay_pid(self) -> int | None:
        """Return the PID of the live relay server, if any."""
        ...

    def encoder_processes(self) -> list[int]:
        """Return PIDs of encoders publishing to the relay server."""
        ...

    def stop_relay(self, grace: float | None = None) -> TerminationResult:
        """Terminate the recorded relay server."""
        ...

    async def start_relay(self) -> ProcessRecord:
        """Start the relay server and wait for its API."""
        ...

    def stop_encoders(self) -> int:
        """Stop every supervisor and encoder, keeping the relay server."""
        ...

    def cleanup_relay_holders(self, *, force: bool = False) -> list[int]:
        """Terminate every process executing the relay binary."""
        ...

    def remove_stale_files(self) -> int:
        """Delete coordination files whose owner is gone."""
        ...

    async def relay_healthy(self, timeout: float) -> bool:
        """Return whether the relay API answers within ``timeout``."""
        ...

    async def start_streams(self) -> list[StreamOutcome]:
        """Launch and validate supervisors for every attached device."""
        ...
