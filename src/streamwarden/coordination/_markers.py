"""Restart-scenario and cleanup-in-progress markers.

Both markers carry no content; only their existence and modification time
matter.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, final

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ._store import FileStateStore


@final
class Markers:
    """Access to the two scenario markers in the run-time store."""

    __slots__ = ("_cleanup_key", "_restart_key", "_store")

    def __init__(
        self,
        store: FileStateStore,
        *,
        restart_key: str = "restart.marker",
        cleanup_key: str = "cleanup.marker",
    ) -> None:
        self._store = store
        self._restart_key = restart_key
        self._cleanup_key = cleanup_key

    @property
    def restart_key(self) -> str:
        return self._restart_key

    @property
    def cleanup_key(self) -> str:
        return self._cleanup_key

    def mark_restart(self) -> None:
        self._store.touch(self._restart_key)

    def restart_age(self) -> float | None:
        return self._store.age(self._restart_key)

    def recent_restart(self, validity: float) -> bool:
        """Return whether a restart marker younger than ``validity`` exists."""
        age = self.restart_age()
        return age is not None and age < validity

    def clear_restart(self) -> None:
        self._store.delete(self._restart_key)

    def cleanup_in_progress(self) -> bool:
        """Return whether a cleanup sweep is running.

        Supervisors treat a true result as a hard stop condition.
        """
        return self._store.exists(self._cleanup_key)

    def begin_cleanup(self) -> None:
        self._store.touch(self._cleanup_key)

    def end_cleanup(self) -> None:
        self._store.delete(self._cleanup_key)

    @contextlib.contextmanager
    def cleanup_sweep(self) -> Iterator[None]:
        """Hold the cleanup marker for the duration of the block."""
        self.begin_cleanup()
        try:
            yield
        finally:
            self.end_cleanup()
