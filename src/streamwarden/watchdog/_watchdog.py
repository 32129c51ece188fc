"""Resource watchdog loop."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, final

import anyio
import anyio.to_thread

from ._models import CheckResult
from ._recovery import RecoveryManager
from ._sampler import ResourceSampler
from ._triggers import TriggerEvaluator

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from streamwarden.runtime import Runtime

    from ._protocol import RecoveryActions


@final
class Watchdog:
    """Samples the relay server periodically and escalates recovery.

    Attributes:
        recovery: Escalation state and recovery levels.
    """

    __slots__ = ("_evaluator", "_runtime", "_sampler", "recovery")

    def __init__(
        self,
        runtime: Runtime,
        sampler: ResourceSampler,
        recovery: RecoveryManager,
        evaluator: TriggerEvaluator,
    ) -> None:
        self._runtime = runtime
        self._sampler = sampler
        self._evaluator = evaluator
        self.recovery = recovery

    @classmethod
    def create(
        cls,
        runtime: Runtime,
        actions: RecoveryActions,
        *,
        recovery_log: FilteringBoundLogger | None = None,
        clock: Callable[[], float] = time.time,
        sample_interval: float | None = None,
    ) -> Watchdog:
        """Build a watchdog over ``actions`` with the configured policy.

        Args:
            runtime: Process runtime context.
            actions: Process operations, normally the orchestrator.
            recovery_log: Logger for the recovery log.
            clock: Source of epoch seconds.
            sample_interval: CPU measurement window. Defaults to the
                sampler's own.
        """
        sampler = (
            ResourceSampler(actions)
            if sample_interval is None
            else ResourceSampler(actions, interval=sample_interval)
        )
        evaluator = TriggerEvaluator(
            runtime.config.watchdog, runtime.state_store, runtime.logger, clock=clock
        )
        recovery = RecoveryManager(
            runtime, actions, recovery_log=recovery_log, clock=clock
        )
        return cls(runtime, sampler, recovery, evaluator)

    async def check(self, *, recover: bool = True) -> CheckResult:
        """Take one sample and act on the first trigger it raises.

        Args:
            recover: Run a recovery attempt for the trigger. When False the
                trigger is only reported.
        """
        sample = await anyio.to_thread.run_sync(self._sampler.sample)
        if sample is not None:
            await anyio.to_thread.run_sync(self._evaluator.record, sample)
            self._runtime.logger.debug(
                "resource_sample",
                relay_pid=sample.pid,
                cpu=sample.cpu,
                combined_cpu=sample.combined_cpu,
                memory=sample.memory,
                fds=sample.fds,
                uptime=sample.uptime,
            )
        trigger = await anyio.to_thread.run_sync(self._evaluator.evaluate, sample)
        if trigger is None or not recover:
            return CheckResult(sample, trigger)
        outcome = await self.recovery.recover(trigger)
        return CheckResult(sample, trigger, outcome)

    def pause_after(self, result: CheckResult) -> float:
        """Return how long to sleep before the next check."""
        config = self._runtime.config.watchdog
        if result.trigger is None:
            return config.check_interval
        if result.trigger.emergency:
            return config.emergency_pause
        return config.recovery_pause

    async def run(self, *, iterations: int | None = None) -> None:
        """Check resources until cancelled.

        A failing check is logged and the loop carries on.

        Args:
            iterations: Stop after this many checks (tests).
        """
        logger = self._runtime.logger
        config = self._runtime.config.watchdog
        state = self.recovery.state
        logger.info(
            "watchdog_started",
            interval=config.check_interval,
            level=state.level,
            consecutive_failed=state.consecutive_failed_restarts,
        )
        done = 0
        while iterations is None or done < iterations:
            done += 1
            try:
                result = await self.check()
            except Exception:  # noqa: BLE001
                logger.exception("watchdog_check_failed")
                delay = config.recovery_pause
            else:
                delay = self.pause_after(result)
            if iterations is not None and done >= iterations:
                break
            await anyio.sleep(delay)
        logger.info("watchdog_stopped", checks=done)
