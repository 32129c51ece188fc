"""Persisted escalation state of the watchdog.

Each field lives in its own key under ``recovery/`` in the state store so a
restarted watchdog resumes at the level and counters it had reached.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from streamwarden.coordination import StateStore

RECOVERY_DIR = "recovery"

# Fields that hold epoch seconds; the rest are counters
_TIMESTAMPS = frozenset({"last_restart_time", "last_reboot_time"})
_MAX_LEVEL = 4


def recovery_key(field_name: str) -> str:
    return f"{RECOVERY_DIR}/{field_name}"


@dataclass(slots=True)
class RecoveryState:
    """Escalation memory of the watchdog.

    Attributes:
        level: Level of the last recovery attempt; 0 before the first one
            of an episode, so the next attempt runs level 1.
        consecutive_failed_restarts: Failed attempts since the last success.
        last_restart_time: Epoch seconds of the last successful recovery.
        last_reboot_time: Epoch seconds of the last reboot issued.
        restart_attempts: Attempts inside the current cooldown window.
    """

    level: int = 0
    consecutive_failed_restarts: int = 0
    last_restart_time: int = 0
    last_reboot_time: int = 0
    restart_attempts: int = 0

    @classmethod
    def load(
        cls,
        store: StateStore,
        *,
        now: int,
        logger: FilteringBoundLogger | None = None,
    ) -> RecoveryState:
        """Load the persisted state, repairing missing or invalid fields.

        Timestamps that are absent, non-positive or in the future become
        ``now``; counters that are absent or negative become 0. Repaired
        fields are written back immediately.
        """
        state = cls()
        repaired: list[str] = []
        for item in fields(cls):
            name = item.name
            value = store.read_int(recovery_key(name))
            if name in _TIMESTAMPS:
                valid = value is not None and 0 < value <= now
                fallback = now
            else:
                upper = _MAX_LEVEL if name == "level" else None
                valid = (
                    value is not None
                    and value >= 0
                    and (upper is None or value <= upper)
                )
                fallback = 0
            if not valid:
                repaired.append(name)
                value = fallback
                store.write(recovery_key(name), value)
            setattr(state, name, value)

        if repaired and logger is not None:
            logger.warning("recovery_state_initialized", fields=repaired)
        return state

    def save(self, store: StateStore) -> None:
        """Persist every field."""
        for item in fields(self):
            store.write(recovery_key(item.name), getattr(self, item.name))
