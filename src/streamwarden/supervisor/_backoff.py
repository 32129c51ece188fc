"""Restart policy for encoder processes.

An encoder that keeps dying right after it starts usually means the device
or the relay server is unhealthy, so repeated short runs earn a long
cooldown instead of the usual flat delay. A hard cap on total restarts
stops a supervisor that cannot keep its encoder alive at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Self

if TYPE_CHECKING:
    from streamwarden.config import SupervisorConfig


class BackoffAction(StrEnum):
    """What the supervisor does after an encoder exit."""

    FLAT = "flat"
    COOLDOWN = "cooldown"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class BackoffDecision:
    """Outcome of :meth:`RestartPolicy.decide`.

    Attributes:
        action: Restart after ``delay``, or stop for good.
        delay: Seconds to sleep before the next start.
        restart_count: Updated total restart count.
        short_runs: Updated consecutive short-run count.
    """

    action: BackoffAction
    delay: float
    restart_count: int
    short_runs: int

    @property
    def stop(self) -> bool:
        return self.action is BackoffAction.STOP


@dataclass(frozen=True, slots=True)
class RestartPolicy:
    """Short-run aware restart policy.

    Attributes:
        max_restarts: Restarts allowed before the supervisor stops.
        short_run_threshold: Runs shorter than this many seconds are short.
        short_run_limit: Consecutive short runs that trigger the cooldown.
        cooldown_delay: Sleep after ``short_run_limit`` short runs.
        restart_delay: Sleep before any other restart.
    """

    max_restarts: int = 50
    short_run_threshold: float = 60.0
    short_run_limit: int = 3
    cooldown_delay: float = 300.0
    restart_delay: float = 10.0

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> Self:
        return cls(
            max_restarts=config.max_restarts,
            short_run_threshold=config.short_run_threshold,
            short_run_limit=config.short_run_limit,
            cooldown_delay=config.cooldown_delay,
            restart_delay=config.restart_delay,
        )

    def is_short(self, run_time: float | None) -> bool:
        """Return whether a run counts as short.

        A ``run_time`` of None is an encoder that died right after spawn.
        """
        return run_time is None or run_time < self.short_run_threshold

    def decide(
        self, restart_count: int, short_runs: int, run_time: float | None
    ) -> BackoffDecision:
        """Classify the run that just ended and pick the next step.

        Args:
            restart_count: Restarts so far.
            short_runs: Consecutive short runs so far.
            run_time: Duration of the run that ended, or None for a failed
                start.

        Returns:
            The decision with updated counters.
        """
        restarts = restart_count + 1
        if restarts > self.max_restarts:
            return BackoffDecision(BackoffAction.STOP, 0.0, restarts, short_runs)

        if not self.is_short(run_time):
            return BackoffDecision(BackoffAction.FLAT, self.restart_delay, restarts, 0)

        short = short_runs + 1
        if short >= self.short_run_limit:
            return BackoffDecision(
                BackoffAction.COOLDOWN, self.cooldown_delay, restarts, 0
            )
        return BackoffDecision(BackoffAction.FLAT, self.restart_delay, restarts, short)
