"""Filesystem-backed state store for cross-process coordination.

Every shared value (PID files, start markers, lock holder records, restart
and cleanup markers, watchdog counters and sample histories) is a small text
file addressed by a key relative to the store root. Writes are crash-atomic:
the value goes to a uniquely named temporary file in the target directory,
is fsynced, then renamed over the target. Readers therefore observe either
the old or the new complete value, never a torn one.
"""

from __future__ import annotations

import contextlib
import errno
import os
import re
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, final, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structlog.typing import FilteringBoundLogger

type StateKey = str

_INT_PATTERN = re.compile(r"^-?[0-9]+$")

DEFAULT_PID_MAX = 32768
# Hard ceiling on 64-bit Linux (PID_MAX_LIMIT)
PID_MAX_LIMIT = 4194304


def read_pid_max(proc_root: Path = Path("/proc")) -> int:
    """Read the kernel's highest assignable PID.

    Args:
        proc_root: Mount point of procfs.

    Returns:
        ``/proc/sys/kernel/pid_max``, or 32768 when it cannot be read.
    """
    try:
        raw = (proc_root / "sys" / "kernel" / "pid_max").read_text().strip()
    except OSError:
        return DEFAULT_PID_MAX
    if not _INT_PATTERN.fullmatch(raw):
        return DEFAULT_PID_MAX
    return min(max(int(raw), 1), PID_MAX_LIMIT)


@runtime_checkable
class StateStore(Protocol):
    """Protocol for coordination state stores.

    Keys are ``/``-separated relative paths; absolute keys address a path
    outside the store root verbatim.
    """

    @property
    def root(self) -> Path:
        """Return the directory keys are resolved against."""
        ...

    def path_for(self, key: StateKey) -> Path:
        """Return the filesystem path backing ``key``."""
        ...

    def prepare(self, key: StateKey) -> Path:
        """Create the directory for ``key`` and return its path."""
        ...

    def write(self, key: StateKey, value: str | int) -> None:
        """Atomically replace the value of ``key``."""
        ...

    def append(
        self, key: StateKey, value: str | int, *, max_lines: int | None = None
    ) -> None:
        """Atomically append a line to ``key``, keeping at most ``max_lines``."""
        ...

    def touch(self, key: StateKey) -> None:
        """Create or refresh an empty marker file."""
        ...

    def read(self, key: StateKey, default: str | None = None) -> str | None:
        """Return the stripped value of ``key`` or ``default``."""
        ...

    def read_lines(self, key: StateKey) -> list[str]:
        """Return the non-empty lines of ``key``."""
        ...

    def read_int(self, key: StateKey, default: int | None = None) -> int | None:
        """Return ``key`` as an integer, deleting invalid content."""
        ...

    def read_pid(self, key: StateKey) -> int | None:
        """Return ``key`` as a PID in the platform's valid range."""
        ...

    def delete(self, key: StateKey) -> None:
        """Remove ``key`` if present."""
        ...

    def exists(self, key: StateKey) -> bool:
        """Return whether ``key`` is present."""
        ...

    def age(self, key: StateKey) -> float | None:
        """Return seconds since ``key`` was last written, or None."""
        ...

    def list_keys(self, prefix: StateKey, *, suffix: str = "") -> list[StateKey]:
        """List keys directly under the ``prefix`` directory."""
        ...


@final
class FileStateStore:
    """State store writing one small text file per key.

    Directories are created on demand. When the primary root cannot be
    created the store switches to ``fallback_root`` for the rest of its
    lifetime and logs a warning.

    Attributes:
        root: The directory keys currently resolve against.
    """

    __slots__ = ("_fallback_root", "_logger", "_pid_max", "_proc_root", "_root")

    def __init__(
        self,
        root: Path,
        *,
        fallback_root: Path | None = None,
        proc_root: Path = Path("/proc"),
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            root: Primary directory.
            fallback_root: Secondary directory used if ``root`` is unusable.
            proc_root: Mount point of procfs, used for the PID range.
            logger: Logger for fallback and invalid-content warnings.
        """
        self._root = root
        self._fallback_root = fallback_root
        self._proc_root = proc_root
        self._logger = logger
        self._pid_max: int | None = None

    @property
    def root(self) -> Path:
        """Return the directory keys are resolved against."""
        return self._root

    @property
    def pid_max(self) -> int:
        """Return the highest valid PID, read once per store."""
        if self._pid_max is None:
            self._pid_max = read_pid_max(self._proc_root)
        return self._pid_max

    def path_for(self, key: StateKey) -> Path:
        """Return the filesystem path backing ``key``."""
        path = Path(key)
        if path.is_absolute():
            return path
        return self._root / path

    def prepare(self, key: StateKey) -> Path:
        """Create the directory for ``key`` and return its path.

        Raises:
            OSError: If neither the primary nor the fallback location is usable.
        """
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if not os.access(path.parent, os.W_OK):
                raise PermissionError(
                    errno.EACCES, "Directory is not writable", str(path.parent)
                )
        except OSError as e:
            if (
                self._fallback_root is None
                or Path(key).is_absolute()
                or self._root == self._fallback_root
            ):
                raise
            if self._logger is not None:
                self._logger.warning(
                    "state_dir_fallback",
                    primary=str(self._root),
                    fallback=str(self._fallback_root),
                    error=str(e),
                )
            self._root = self._fallback_root
            path = self.path_for(key)
            path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def _atomic_write(self, key: StateKey, text: str) -> None:
        path = self.prepare(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                _ = f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def write(self, key: StateKey, value: str | int) -> None:
        """Atomically replace the value of ``key``."""
        self._atomic_write(key, f"{value}\n")

    def append(
        self, key: StateKey, value: str | int, *, max_lines: int | None = None
    ) -> None:
        """Atomically append a line to ``key``, keeping at most ``max_lines``.

        The whole bounded tail is rewritten, so concurrent appenders may lose
        each other's lines but never corrupt the file.
        """
        lines = self.read_lines(key)
        lines.append(str(value))
        if max_lines is not None:
            lines = lines[-max_lines:]
        self._atomic_write(key, _join_lines(lines))

    def touch(self, key: StateKey) -> None:
        """Create or refresh an empty marker file."""
        self._atomic_write(key, "")

    def read(self, key: StateKey, default: str | None = None) -> str | None:
        """Return the stripped value of ``key`` or ``default`` if unreadable."""
        try:
            return self.path_for(key).read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return default

    def read_lines(self, key: StateKey) -> list[str]:
        """Return the non-empty lines of ``key``."""
        raw = self.read(key)
        if not raw:
            return []
        return [line.strip() for line in raw.splitlines() if line.strip()]

    def read_int(self, key: StateKey, default: int | None = None) -> int | None:
        """Return ``key`` as an integer.

        Content that does not match the integer pattern is deleted and
        treated as absent.
        """
        raw = self.read(key)
        if raw is None:
            return default
        if not _INT_PATTERN.fullmatch(raw):
            self._discard_invalid(key, raw)
            return default
        return int(raw)

    def read_pid(self, key: StateKey) -> int | None:
        """Return ``key`` as a PID.

        Values outside ``1..pid_max`` are deleted and treated as absent.
        """
        value = self.read_int(key)
        if value is None:
            return None
        if not 1 <= value <= self.pid_max:
            self._discard_invalid(key, str(value))
            return None
        return value

    def _discard_invalid(self, key: StateKey, raw: str) -> None:
        if self._logger is not None:
            self._logger.warning("state_invalid_content", key=key, content=raw[:64])
        self.delete(key)

    def delete(self, key: StateKey) -> None:
        """Remove ``key`` if present."""
        with contextlib.suppress(FileNotFoundError):
            self.path_for(key).unlink()

    def delete_many(self, keys: Iterable[StateKey]) -> None:
        """Remove every key in ``keys``."""
        for key in keys:
            self.delete(key)

    def exists(self, key: StateKey) -> bool:
        """Return whether ``key`` is present."""
        return self.path_for(key).exists()

    def age(self, key: StateKey) -> float | None:
        """Return seconds since ``key`` was last written, or None if absent."""
        try:
            mtime = self.path_for(key).stat().st_mtime
        except OSError:
            return None
        return max(0.0, time.time() - mtime)

    def list_keys(self, prefix: StateKey, *, suffix: str = "") -> list[StateKey]:
        """List keys directly under the ``prefix`` directory.

        Temporary files from in-flight writes are never listed.
        """
        directory = self.path_for(prefix)
        try:
            entries = list(directory.iterdir())
        except OSError:
            return []
        return sorted(
            f"{prefix}/{entry.name}"
            for entry in entries
            if entry.is_file()
            and not entry.name.startswith(".")
            and entry.name.endswith(suffix)
        )

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.exists(key)


def _join_lines(lines: list[str]) -> str:
    return "".join(f"{line}\n" for line in lines)
