"""Escalating recovery of the relay server.

Level selection:

- Inside ``restart_cooldown`` of the last successful recovery only
  emergency triggers run; everything else is skipped.
- Outside it the attempt counter starts over, and so does the level unless
  the previous attempt failed.
- Level 4 once attempts reach ``max_restart_attempts`` or consecutive
  failures reach ``reboot_threshold``; otherwise one above the previous
  level, capped at 3.

The state is saved before and after every attempt.
"""

from __future__ import annotations

import os
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, final

import anyio
import anyio.to_thread

from streamwarden.exceptions import (
    LockTimeoutError,
    RecoveryError,
    StreamStartError,
    StreamWardenError,
)
from streamwarden.utils import (
    CommandConfig,
    dump_json,
    get_system_log_file,
    process_usage,
    run_command,
    tail_file,
)

from ._models import RecoveryLevel, RecoveryOutcome
from ._state import RecoveryState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from structlog.typing import FilteringBoundLogger

    from streamwarden.runtime import Runtime

    from ._models import Trigger
    from ._protocol import RecoveryActions

SNAPSHOTS_DIR = "snapshots"
MAX_SNAPSHOTS = 50
HEALTH_CPU_INTERVAL: float = 1.0
REBOOT_COMMAND_TIMEOUT: float = 30.0


def _snapshot_stamp() -> str:
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").format("YYYYMMDD[T]HHmmss")


def _get_timestamp() -> str:
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").to_iso8601_string()


@final
class RecoveryManager:
    """Runs recovery attempts and keeps the escalation state.

    Attributes:
        state: Escalation state, loaded from the state store at construction.
    """

    __slots__ = ("_actions", "_clock", "_logger", "_recovery_log", "_runtime", "state")

    def __init__(
        self,
        runtime: Runtime,
        actions: RecoveryActions,
        *,
        recovery_log: FilteringBoundLogger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the manager and load the persisted state.

        Args:
            runtime: Process runtime context.
            actions: Process operations, normally the orchestrator.
            recovery_log: One line per attempt. Defaults to the system logger.
            clock: Source of epoch seconds.
        """
        self._runtime = runtime
        self._actions = actions
        self._logger = runtime.logger
        self._recovery_log = recovery_log or runtime.logger
        self._clock = clock
        self.state = RecoveryState.load(
            runtime.state_store, now=self._now(), logger=runtime.logger
        )

    def _now(self) -> int:
        return int(self._clock())

    def in_cooldown(self) -> bool:
        elapsed = self._now() - self.state.last_restart_time
        return elapsed < self._runtime.config.watchdog.restart_cooldown

    def next_level(self) -> RecoveryLevel:
        """Return the level the current attempt runs at."""
        config = self._runtime.config.watchdog
        state = self.state
        if (
            state.restart_attempts >= config.max_restart_attempts
            or state.consecutive_failed_restarts >= config.reboot_threshold
        ):
            return RecoveryLevel.REBOOT
        return RecoveryLevel(min(state.level + 1, RecoveryLevel.AGGRESSIVE))

    async def recover(self, trigger: Trigger) -> RecoveryOutcome:
        """Run one recovery attempt for ``trigger`` under the system lock.

        Never raises for a failed attempt; the failure is counted and
        reported in the outcome.
        """
        runtime = self._runtime
        cooldown = self.in_cooldown()
        if cooldown and not trigger.emergency:
            self._logger.info("recovery_skipped_cooldown", trigger=trigger.kind.value)
            return RecoveryOutcome(trigger, skipped="cooldown")
        if cooldown:
            self._logger.warning("recovery_bypassing_cooldown", reason=trigger.reason)

        try:
            handle = await anyio.to_thread.run_sync(
                runtime.locks.acquire,
                runtime.config.paths.system_lock,
                runtime.config.locks.acquisition_timeout,
            )
        except LockTimeoutError as e:
            self._logger.warning("recovery_lock_busy", holder=e.holder_pid)
            return RecoveryOutcome(trigger, skipped="lock_busy")
        try:
            return await self._recover_locked(trigger, cooldown=cooldown)
        finally:
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(runtime.locks.release, handle)

    async def _recover_locked(
        self, trigger: Trigger, *, cooldown: bool
    ) -> RecoveryOutcome:
        state = self.state
        store = self._runtime.state_store
        if not cooldown:
            state.restart_attempts = 0
            if state.consecutive_failed_restarts == 0:
                state.level = 0
        state.restart_attempts += 1
        level = self.next_level()
        state.level = int(level)
        await anyio.to_thread.run_sync(state.save, store)

        self._logger.warning(
            "recovery_started",
            level=int(level),
            trigger=trigger.kind.value,
            reason=trigger.reason,
            attempts=state.restart_attempts,
            consecutive_failed=state.consecutive_failed_restarts,
        )
        snapshot = await anyio.to_thread.run_sync(
            self.write_snapshot, trigger, level, "recovery"
        )

        if level is RecoveryLevel.REBOOT:
            return await self._consider_reboot(trigger, snapshot)
        success, error = await self._attempt(level)
        return await self._finish(trigger, level, success, error, snapshot)

    async def _attempt(self, level: RecoveryLevel) -> tuple[bool, str | None]:
        actions: dict[RecoveryLevel, Callable[[], Awaitable[None]]] = {
            RecoveryLevel.STANDARD: self.standard_restart,
            RecoveryLevel.THOROUGH: self.thorough_restart,
            RecoveryLevel.AGGRESSIVE: self.aggressive_restart,
        }
        try:
            await actions[level]()
        except (StreamWardenError, OSError) as e:
            self._logger.error("recovery_action_failed", level=int(level), error=str(e))
            return False, str(e)
        await anyio.sleep(self._runtime.config.watchdog.settle_delay)
        return True, None

    async def _finish(
        self,
        trigger: Trigger,
        level: RecoveryLevel,
        success: bool,
        error: str | None,
        snapshot: str | None,
        *,
        rebooted: bool = False,
    ) -> RecoveryOutcome:
        state = self.state
        if success:
            state.consecutive_failed_restarts = 0
            state.last_restart_time = self._now()
        else:
            state.consecutive_failed_restarts += 1
        await anyio.to_thread.run_sync(state.save, self._runtime.state_store)

        self._recovery_log.info(
            "recovery_attempt",
            level=int(level),
            trigger=trigger.kind.value,
            reason=trigger.reason,
            success=success,
            error=error,
            attempts=state.restart_attempts,
            consecutive_failed=state.consecutive_failed_restarts,
            rebooted=rebooted,
            snapshot=snapshot,
        )
        if success:
            self._logger.info("recovery_succeeded", level=int(level))
        else:
            self._logger.error(
                "recovery_failed",
                level=int(level),
                error=error,
                consecutive_failed=state.consecutive_failed_restarts,
            )
        return RecoveryOutcome(
            trigger,
            level=level,
            success=success,
            rebooted=rebooted,
            snapshot=snapshot,
            error=error,
        )

    # -------------------------------------------------------------------------
    # Levels
    # -------------------------------------------------------------------------

    async def standard_restart(self) -> None:
        """Level 1: stop and start the relay server only."""
        _ = await anyio.to_thread.run_sync(self._actions.stop_relay)
        _ = await self._actions.start_relay()

    async def thorough_restart(self) -> None:
        """Level 2: also clear encoders and stray relay processes, then verify."""
        actions = self._actions
        config = self._runtime.config.watchdog
        _ = await anyio.to_thread.run_sync(actions.stop_encoders)
        _ = await anyio.to_thread.run_sync(actions.stop_relay)
        _ = await anyio.to_thread.run_sync(actions.cleanup_relay_holders)
        _ = await actions.start_relay()
        if not await self.verify_health(config.health_timeout):
            msg = "Relay server failed health check after thorough restart"
            raise RecoveryError(msg, level=RecoveryLevel.THOROUGH)
        await self._restart_streams()

    async def aggressive_restart(self) -> None:
        """Level 3: tear down the chain, force-kill leftovers, start fresh."""
        actions = self._actions
        config = self._runtime.config.watchdog
        _ = await anyio.to_thread.run_sync(actions.stop_encoders)
        _ = await anyio.to_thread.run_sync(actions.stop_relay, config.grace_period)
        await anyio.sleep(config.grace_period)
        _ = await anyio.to_thread.run_sync(
            lambda: actions.cleanup_relay_holders(force=True)
        )
        removed = await anyio.to_thread.run_sync(actions.remove_stale_files)
        self._logger.info("stale_files_removed", files=removed)
        _ = await actions.start_relay()
        if not await self.verify_health(config.aggressive_health_timeout):
            msg = "Relay server failed health check after aggressive restart"
            raise RecoveryError(msg, level=RecoveryLevel.AGGRESSIVE)
        await self._restart_streams()

    async def verify_health(self, timeout: float) -> bool:
        """Return whether the relay API answers and its CPU starts below warning."""
        if not await self._actions.relay_healthy(timeout):
            self._logger.error("relay_unhealthy_after_restart", timeout=timeout)
            return False
        pid = self._actions.relay_pid()
        if pid is None:
            return False
        usage = await anyio.to_thread.run_sync(
            lambda: process_usage(pid, interval=HEALTH_CPU_INTERVAL)
        )
        if usage is None:
            return False
        warning = self._runtime.config.watchdog.cpu_warning
        if usage.cpu_percent >= warning:
            self._logger.error(
                "relay_cpu_high_after_restart",
                cpu=usage.cpu_percent,
                warning=warning,
            )
            return False
        return True

    async def _restart_streams(self) -> None:
        try:
            outcomes = await self._actions.start_streams()
        except StreamStartError as e:
            self._logger.warning("streams_restart_incomplete", error=str(e))
            return
        self._logger.info(
            "streams_restarted",
            validated=sum(1 for o in outcomes if o.validated),
            devices=len(outcomes),
        )

    # -------------------------------------------------------------------------
    # Reboot
    # -------------------------------------------------------------------------

    async def _consider_reboot(
        self, trigger: Trigger, snapshot: str | None
    ) -> RecoveryOutcome:
        config = self._runtime.config.watchdog
        level = RecoveryLevel.REBOOT
        since_reboot = self._now() - self.state.last_reboot_time
        if not config.enable_auto_reboot or since_reboot < config.reboot_cooldown:
            self._logger.warning(
                "reboot_unavailable",
                reason="disabled" if not config.enable_auto_reboot else "cooldown",
            )
            success, error = await self._attempt(RecoveryLevel.AGGRESSIVE)
            return await self._finish(trigger, level, success, error, snapshot)

        self._logger.warning("reboot_final_attempt")
        success, error = await self._attempt(RecoveryLevel.AGGRESSIVE)
        if success:
            self._logger.info("reboot_cancelled")
            return await self._finish(trigger, level, success, error, snapshot)

        self.state.last_reboot_time = self._now()
        await anyio.to_thread.run_sync(self.state.save, self._runtime.state_store)
        reboot_snapshot = await anyio.to_thread.run_sync(
            self.write_snapshot, trigger, level, "reboot"
        )
        self._logger.critical(
            "reboot_issued",
            command=list(config.reboot_command),
            consecutive_failed=self.state.consecutive_failed_restarts + 1,
        )
        result = await anyio.to_thread.run_sync(
            run_command,
            CommandConfig(argv=config.reboot_command, timeout=REBOOT_COMMAND_TIMEOUT),
        )
        if not result.success:
            self._logger.error(
                "reboot_failed", error=result.error or result.stderr.strip()
            )
        return await self._finish(
            trigger,
            level,
            False,
            error,
            reboot_snapshot,
            rebooted=result.success,
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def write_snapshot(
        self, trigger: Trigger, level: RecoveryLevel, kind: str
    ) -> str | None:
        """Persist a JSON diagnostic snapshot under ``snapshots/``.

        Returns:
            The state key written, or None if it could not be written.
        """
        runtime = self._runtime
        relay_pid = self._actions.relay_pid()
        encoders = self._actions.encoder_processes()
        data = {
            "timestamp": _get_timestamp(),
            "kind": kind,
            "level": int(level),
            "trigger": trigger.kind.value,
            "reason": trigger.reason,
            "state": asdict(self.state),
            "relay": process_usage(relay_pid) if relay_pid is not None else None,
            "encoders": [process_usage(pid) for pid in encoders],
            "load_average": os.getloadavg(),
            "log_tail": tail_file(get_system_log_file(runtime.config), 50).splitlines(),
        }
        store = runtime.state_store
        key = f"{SNAPSHOTS_DIR}/{_snapshot_stamp()}-{kind}-l{int(level)}.json"
        try:
            store.write(key, dump_json(data, indent=True))
        except OSError as e:
            self._logger.warning("snapshot_failed", error=str(e))
            return None
        existing = store.list_keys(SNAPSHOTS_DIR, suffix=".json")
        store.delete_many(existing[:-MAX_SNAPSHOTS])
        self._logger.info("snapshot_written", key=key)
        return key
