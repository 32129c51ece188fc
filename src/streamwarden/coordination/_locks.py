"""Advisory exclusive locks with stale-holder detection.

Locks are ``flock(2)`` locks on ``<name>.lock`` files in the run-time store.
The kernel lock is the only source of truth: it disappears when the
descriptor is closed, including when the holder dies. The companion
``<name>.holder`` record (PID plus start marker) names the holder for
diagnostics. Apart from a forced stop, lock files are only unlinked by a
process that holds their kernel lock.
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, final

from streamwarden.exceptions import LockTimeoutError

from ._identity import ProcessRole
from ._layout import holder_key, lock_key

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

    from ._identity import IdentityTracker, ProcessRecord
    from ._store import FileStateStore

DEFAULT_STALE_THRESHOLD: float = 300.0
DEFAULT_POLL_INTERVAL: float = 0.1


@dataclass(frozen=True, slots=True)
class LockHandle:
    """An acquired lock.

    Attributes:
        name: Lock name (store key without the ``.lock`` suffix).
        path: Lock file path.
        fd: Descriptor carrying the kernel lock.
        inode: Inode of the locked file at acquisition time.
    """

    name: str
    path: Path
    fd: int
    inode: int


@final
class LockManager:
    """Acquires and releases named locks in a state store."""

    __slots__ = (
        "_identities",
        "_logger",
        "_poll_interval",
        "_stale_threshold",
        "_store",
    )

    def __init__(
        self,
        store: FileStateStore,
        identities: IdentityTracker,
        *,
        stale_threshold: float = DEFAULT_STALE_THRESHOLD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the lock manager.

        Args:
            store: Store the lock files live in.
            identities: Tracker used to record and verify holders.
            stale_threshold: Age after which a lock file without a holder
                record is considered abandoned.
            poll_interval: Sleep between attempts while contended.
            logger: Optional logger.
        """
        self._store = store
        self._identities = identities
        self._stale_threshold = stale_threshold
        self._poll_interval = poll_interval
        self._logger = logger

    def acquire(self, name: str, timeout: float) -> LockHandle:
        """Acquire lock ``name``, waiting at most ``timeout`` seconds.

        A lock file whose kernel lock is held is never removed, whatever
        its holder record says: a contended ``flock`` means a live
        descriptor. Leftover holder records are replaced once the lock is
        taken.

        Raises:
            LockTimeoutError: If the lock is still held when the timeout
                expires.
        """
        deadline = time.monotonic() + max(timeout, 0.0)
        warned = False
        while True:
            handle = self._try_acquire(name)
            if handle is not None:
                return handle

            holder = self._holder(name)
            if not warned and self._stale_reason(name, holder) is not None:
                warned = True
                if self._logger is not None:
                    self._logger.warning(
                        "lock_held_without_live_holder",
                        lock=name,
                        holder_pid=holder.pid if holder is not None else None,
                    )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(
                    f"Timed out after {timeout}s waiting for lock '{name}'",
                    name=name,
                    timeout=timeout,
                    holder_pid=holder.pid if holder is not None else None,
                )
            time.sleep(min(self._poll_interval, remaining))

    def _try_acquire(self, name: str) -> LockHandle | None:
        path = self._store.prepare(lock_key(name))
        fd = self._lock_fd(path, os.O_RDWR | os.O_CREAT)
        if fd is None:
            return None

        inode = os.fstat(fd).st_ino
        os.set_inheritable(fd, False)
        previous = self._holder(name)
        if previous is not None and not self._identities.is_alive_record(previous):
            if self._logger is not None:
                self._logger.warning(
                    "stale_lock_reclaimed",
                    lock=name,
                    reason="holder_dead",
                    holder_pid=previous.pid,
                )
        record = self._identities.record(
            holder_key(name), os.getpid(), role=ProcessRole.HOLDER, identity=name
        )
        if _inode_at(path) != inode:
            # Removed by a forced cleanup while the holder was being recorded
            _ = self._identities.forget_if_current(record)
            os.close(fd)
            return None
        return LockHandle(name=name, path=path, fd=fd, inode=inode)

    @staticmethod
    def _lock_fd(path: Path, flags: int) -> int | None:
        """Open ``path`` and take its kernel lock without blocking.

        Returns None if the file is missing, the lock is held elsewhere, or
        the locked file is no longer the one at ``path``.
        """
        try:
            fd = os.open(path, flags | os.O_CLOEXEC, 0o644)
        except FileNotFoundError:
            return None
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None
        except BaseException:
            os.close(fd)
            raise
        if _inode_at(path) != os.fstat(fd).st_ino:
            # Locked a file its previous holder already unlinked
            os.close(fd)
            return None
        return fd

    def _holder(self, name: str) -> ProcessRecord | None:
        return self._identities.load(
            holder_key(name), role=ProcessRole.HOLDER, identity=name
        )

    def _stale_reason(self, name: str, holder: ProcessRecord | None) -> str | None:
        if holder is not None:
            return None if self._identities.is_alive_record(holder) else "holder_dead"
        age = self._store.age(lock_key(name))
        if age is None or age < self._stale_threshold:
            return None
        return "no_holder"

    def remove_if_unheld(self, name: str) -> bool:
        """Delete the files of lock ``name`` if nobody holds it.

        The kernel lock is taken before anything is unlinked, so a lock
        acquired concurrently is never removed from under its holder.

        Returns:
            True if the files were removed.
        """
        path = self._store.path_for(lock_key(name))
        fd = self._lock_fd(path, os.O_RDWR)
        if fd is None:
            return False
        try:
            reason = self._stale_reason(name, self._holder(name))
            if self._logger is not None:
                self._logger.info("stale_lock_removed", lock=name, reason=reason)
            self._identities.forget(holder_key(name))
            self._store.delete(lock_key(name))
        finally:
            os.close(fd)
        return True

    def release(self, handle: LockHandle) -> None:
        """Release ``handle``.

        The lock file and holder record are removed only while they still
        belong to this handle. Closing the descriptor is what drops the
        kernel lock.
        """
        try:
            if _inode_at(handle.path) == handle.inode:
                self._identities.forget(holder_key(handle.name))
                self._store.delete(lock_key(handle.name))
        finally:
            with contextlib.suppress(OSError):
                os.close(handle.fd)

    def probe(self, name: str) -> int | None:
        """Return the PID of the live holder of ``name``, or None.

        The check never modifies the lock file or the holder record.
        """
        path = self._store.path_for(lock_key(name))
        try:
            fd = os.open(path, os.O_RDONLY | os.O_CLOEXEC)
        except OSError:
            return None
        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
            except BlockingIOError:
                holder = self._holder(name)
                if holder is not None and self._identities.is_alive_record(holder):
                    return holder.pid
                return None
            fcntl.flock(fd, fcntl.LOCK_UN)
            return None
        finally:
            os.close(fd)

    def holder(self, name: str) -> ProcessRecord | None:
        """Return the recorded holder of ``name`` without checking liveness."""
        return self._holder(name)

    @contextlib.contextmanager
    def locked(self, name: str, timeout: float) -> Iterator[LockHandle]:
        """Hold lock ``name`` for the duration of the block."""
        handle = self.acquire(name, timeout)
        try:
            yield handle
        finally:
            self.release(handle)


def _inode_at(path: Path) -> int | None:
    try:
        return os.stat(path).st_ino
    except FileNotFoundError:
        return None
