"""Graceful-then-forced termination of recorded processes.

Signals are only sent after the process identity has been re-verified, so
a recycled PID is never signalled. Processes spawned in their own session
are signalled as a whole process group, which also reaches any helpers
the encoder or relay server started.
"""

from __future__ import annotations

import os
import signal
import time
from enum import StrEnum
from typing import TYPE_CHECKING, final

from streamwarden.exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from streamwarden.coordination import IdentityTracker, ProcessRecord

DEFAULT_POLL_INTERVAL: float = 0.1
FORCE_WAIT: float = 2.0


class TerminationResult(StrEnum):
    """Outcome of a termination step."""

    TERMINATED = "terminated"
    TIMED_OUT = "timed_out"
    ALREADY_GONE = "already_gone"


@final
class ProcessTerminator:
    """Stops recorded processes through the identity tracker."""

    __slots__ = ("_identities", "_logger", "_poll_interval", "_sleep")

    def __init__(
        self,
        identities: IdentityTracker,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        logger: FilteringBoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._identities = identities
        self._poll_interval = poll_interval
        self._logger = logger
        self._sleep = sleep

    def request_stop(self, record: ProcessRecord, grace: float) -> TerminationResult:
        """Send SIGTERM and wait up to ``grace`` seconds for the exit."""
        if not self._signal(record, signal.SIGTERM):
            return TerminationResult.ALREADY_GONE
        if self._wait_gone(record, grace):
            return TerminationResult.TERMINATED
        return TerminationResult.TIMED_OUT

    def force_stop(self, record: ProcessRecord) -> TerminationResult:
        """Send SIGKILL and wait briefly for the kernel to reap it."""
        if not self._signal(record, signal.SIGKILL):
            return TerminationResult.ALREADY_GONE
        if self._wait_gone(record, FORCE_WAIT):
            return TerminationResult.TERMINATED
        return TerminationResult.TIMED_OUT

    def terminate(self, record: ProcessRecord, grace: float) -> TerminationResult:
        """Run the full cascade: SIGTERM, wait, then SIGKILL if needed."""
        result = self.request_stop(record, grace)
        if result is not TerminationResult.TIMED_OUT:
            self._log(record, result)
            return result

        if self._logger is not None:
            self._logger.warning(
                "termination_escalated",
                pid=record.pid,
                role=record.role.value,
                identity=record.identity,
                grace=grace,
            )
        forced = self.force_stop(record)
        if forced is TerminationResult.ALREADY_GONE:
            forced = TerminationResult.TERMINATED
        self._log(record, forced)
        return forced

    def _signal(self, record: ProcessRecord, signum: signal.Signals) -> bool:
        if not self._identities.is_alive_record(record):
            return False
        try:
            if _leads_group(record.pid):
                os.killpg(record.pid, signum)
            else:
                os.kill(record.pid, signum)
        except ProcessLookupError:
            return False
        except PermissionError as e:
            msg = f"Not permitted to signal {record.role.value} process {record.pid}"
            raise PermissionDeniedError(msg) from e
        return True

    def _wait_gone(self, record: ProcessRecord, timeout: float) -> bool:
        deadline = time.monotonic() + max(timeout, 0.0)
        while self._identities.is_alive_record(record):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._sleep(min(self._poll_interval, remaining))
        return True

    def _log(self, record: ProcessRecord, result: TerminationResult) -> None:
        if self._logger is not None:
            self._logger.info(
                "process_terminated",
                pid=record.pid,
                role=record.role.value,
                identity=record.identity,
                result=result.value,
            )


def _leads_group(pid: int) -> bool:
    try:
        return os.getpgid(pid) == pid
    except OSError:
        return False
