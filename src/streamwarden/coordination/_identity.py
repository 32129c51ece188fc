"""Process identity tracking resistant to PID reuse.

A PID alone does not identify a process: once it exits the kernel may hand
the same number to an unrelated program. Every supervised child is
therefore recorded together with its start marker, the ``starttime`` field
of ``/proc/<pid>/stat`` (clock ticks since boot at which the process
started). A recycled PID always carries a different start marker.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, final

from ._layout import start_key

if TYPE_CHECKING:
    from ._store import FileStateStore

# starttime is field 22; fields after the comm's closing paren start at 3
_STARTTIME_INDEX = 22 - 3
_DEAD_STATES = frozenset({"Z", "X", "x"})


class ProcessRole(StrEnum):
    """Role of a supervised process."""

    RELAY = "relay"
    ENCODER = "encoder"
    SUPERVISOR = "supervisor"
    HOLDER = "holder"


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """A supervised OS process as recorded at spawn time.

    Attributes:
        pid: Process ID.
        marker: Start marker captured when the record was written.
        role: What the process is.
        identity: Owning stream identity, empty for the relay and locks.
        key: State store key of the PID file.
    """

    pid: int
    marker: int
    role: ProcessRole
    identity: str
    key: str


@final
class IdentityTracker:
    """Records and re-verifies process identities."""

    __slots__ = ("_proc_root", "_store")

    def __init__(self, store: FileStateStore, proc_root: Path = Path("/proc")) -> None:
        self._store = store
        self._proc_root = proc_root

    @property
    def store(self) -> FileStateStore:
        return self._store

    def start_marker(self, pid: int) -> int | None:
        """Return the start marker of a running process.

        Returns:
            The ``starttime`` value, or None if the process does not exist,
            is a zombie, or its stat file cannot be parsed.
        """
        if pid <= 0:
            return None
        try:
            raw = (self._proc_root / str(pid) / "stat").read_text()
        except (OSError, UnicodeDecodeError):
            return None
        # comm may contain spaces and parens; only the last ')' is reliable
        close = raw.rfind(")")
        if close < 0:
            return None
        fields = raw[close + 1 :].split()
        if len(fields) <= _STARTTIME_INDEX or fields[0] in _DEAD_STATES:
            return None
        try:
            return int(fields[_STARTTIME_INDEX])
        except ValueError:
            return None

    def is_alive(self, pid: int, marker: int) -> bool:
        """Return True only if ``pid`` exists and still carries ``marker``."""
        current = self.start_marker(pid)
        return current is not None and current == marker

    def record(
        self, key: str, pid: int, *, role: ProcessRole, identity: str = ""
    ) -> ProcessRecord | None:
        """Capture and persist the identity of a freshly spawned process.

        The start marker is written before the PID file so a reader that
        sees the PID always finds a matching marker.

        Returns:
            The record, or None if the process already exited.
        """
        marker = self.start_marker(pid)
        if marker is None:
            return None
        self._store.write(start_key(key), marker)
        self._store.write(key, pid)
        return ProcessRecord(
            pid=pid, marker=marker, role=role, identity=identity, key=key
        )

    def load(
        self, key: str, *, role: ProcessRole, identity: str = ""
    ) -> ProcessRecord | None:
        """Load a persisted record.

        A PID file without a start marker yields a record whose marker can
        never match, so it is always reported as not alive.
        """
        pid = self._store.read_pid(key)
        if pid is None:
            return None
        marker = self._store.read_int(start_key(key), -1)
        return ProcessRecord(
            pid=pid,
            marker=-1 if marker is None else marker,
            role=role,
            identity=identity,
            key=key,
        )

    def is_alive_record(self, record: ProcessRecord | None) -> bool:
        return record is not None and self.is_alive(record.pid, record.marker)

    def is_current(self, record: ProcessRecord) -> bool:
        """Return whether the store still holds exactly ``record``."""
        pid = self._store.read_pid(record.key)
        marker = self._store.read_int(start_key(record.key))
        return pid == record.pid and marker == record.marker

    def forget(self, key: str) -> None:
        """Delete the PID file and its start marker."""
        self._store.delete(key)
        self._store.delete(start_key(key))

    def forget_if_current(self, record: ProcessRecord) -> bool:
        """Delete ``record`` unless another process has replaced it."""
        if not self.is_current(record):
            return False
        self.forget(record.key)
        return True
