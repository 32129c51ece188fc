"""Process table scanning for processes the PID records no longer cover.

The PID records are the primary source of truth; these helpers find the
relay servers and encoders that outlived their records (an orchestrator
crash, a manual start) by matching command lines.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


@dataclass(frozen=True, slots=True)
class ProcessMatch:
    """A process found by scanning the process table.

    Attributes:
        pid: Process ID.
        name: Executable name.
        cmdline: Full argument vector.
        status: psutil status string (``running``, ``zombie``, ...).
    """

    pid: int
    name: str
    cmdline: tuple[str, ...]
    status: str

    @property
    def zombie(self) -> bool:
        return self.status == psutil.STATUS_ZOMBIE


def _program(argv: Sequence[str]) -> str:
    return PurePath(argv[0]).name if argv else ""


def runs_program(argv: Sequence[str], binary: str) -> bool:
    """Return whether ``argv`` executes ``binary`` (compared by basename)."""
    return _program(argv) == PurePath(binary).name


def is_encoder_cmdline(argv: Sequence[str], binary: str, url_prefix: str) -> bool:
    """Return whether ``argv`` is an encoder publishing under ``url_prefix``.

    >>> is_encoder_cmdline(
    ...     ["ffmpeg", "-i", "plughw:1,0", "rtsp://localhost:8554/mic"],
    ...     "ffmpeg",
    ...     "rtsp://localhost:8554/",
    ... )
    True
    """
    return runs_program(argv, binary) and any(a.startswith(url_prefix) for a in argv)


def find_processes(match: Callable[[tuple[str, ...]], bool]) -> list[ProcessMatch]:
    """Return every process whose command line satisfies ``match``.

    The calling process is never included. Processes that vanish or deny
    access while being inspected are skipped.
    """
    me = os.getpid()
    found: list[ProcessMatch] = []
    for proc in psutil.process_iter(["pid", "name", "cmdline", "status"]):
        try:
            info = proc.info
            pid = int(info["pid"])
            if pid == me:
                continue
            argv = tuple(info.get("cmdline") or ())
            if not argv or not match(argv):
                continue
            found.append(
                ProcessMatch(
                    pid=pid,
                    name=str(info.get("name") or _program(argv)),
                    cmdline=argv,
                    status=str(info.get("status") or ""),
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return found


def terminate_processes(pids: Sequence[int], timeout: float) -> list[int]:
    """Terminate processes, escalating to SIGKILL for stragglers.

    Only for processes without a trustworthy PID record; recorded processes
    go through the identity-checked termination cascade instead.

    Returns:
        PIDs still alive after the forced kill.
    """
    procs: list[psutil.Process] = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            procs.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    _, alive = psutil.wait_procs(alive, timeout=2.0)
    return [proc.pid for proc in alive]


@dataclass(frozen=True, slots=True)
class ProcessUsage:
    """Resource readings of one process.

    Attributes:
        pid: Process ID.
        cpu_percent: CPU usage over the sampling interval (100 = one core).
        memory_percent: Resident memory as a share of physical memory.
        fds: Open file descriptors.
        threads: Thread count.
        uptime: Seconds since the process started.
    """

    pid: int
    cpu_percent: float
    memory_percent: float
    fds: int
    threads: int
    uptime: float


def process_usage(pid: int, *, interval: float = 0.0) -> ProcessUsage | None:
    """Read the resource usage of ``pid``.

    Args:
        pid: Process to inspect.
        interval: Seconds over which CPU usage is measured. Zero compares
            against the process's lifetime average.

    Returns:
        The readings, or None if the process is gone or inaccessible.
    """
    try:
        proc = psutil.Process(pid)
        if interval > 0:
            cpu = proc.cpu_percent(interval=interval)
        else:
            times = proc.cpu_times()
            lifetime = max(time.time() - proc.create_time(), 1e-6)
            cpu = 100.0 * (times.user + times.system) / lifetime
        return ProcessUsage(
            pid=pid,
            cpu_percent=round(cpu, 1),
            memory_percent=round(proc.memory_percent(), 2),
            fds=proc.num_fds(),
            threads=proc.num_threads(),
            uptime=max(0.0, time.time() - proc.create_time()),
        )
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def combined_cpu_percent(pids: Sequence[int], interval: float) -> float:
    """Return the summed CPU usage of ``pids`` over one shared interval."""
    procs: list[psutil.Process] = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            _ = proc.cpu_percent(interval=None)
            procs.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    if not procs:
        return 0.0
    time.sleep(interval)
    total = 0.0
    for proc in procs:
        try:
            total += proc.cpu_percent(interval=None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return round(total, 1)
