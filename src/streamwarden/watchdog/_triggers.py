"""Recovery trigger evaluation.

Counters and histories are kept in the state store rather than in memory,
so a restarted watchdog continues sustained-period counts and trend
histories where the previous instance left off.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, final

from ._models import Trigger, TriggerKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from streamwarden.config import WatchdogConfig
    from streamwarden.coordination import StateStore

    from ._models import ResourceSample

WATCHDOG_DIR = "watchdog"
HISTORY_DIR = "history"
CPU_HISTORY_KEY = f"{HISTORY_DIR}/cpu"
MEMORY_HISTORY_KEY = f"{HISTORY_DIR}/memory"
HIGH_CPU_KEY = f"{WATCHDOG_DIR}/consecutive_high_cpu"
HIGH_MEMORY_KEY = f"{WATCHDOG_DIR}/consecutive_high_memory"
LAST_WARNING_KEY = f"{WATCHDOG_DIR}/last_warning"
LAST_TREND_KEY = f"{WATCHDOG_DIR}/last_trend"

TREND_WINDOW = 3


def current_key(metric: str) -> str:
    return f"{WATCHDOG_DIR}/current_{metric}"


def trend_rate(history: list[int]) -> int | None:
    """Return the per-period increase if the last three samples strictly rise.

    >>> trend_rate([10, 20, 31])
    10
    >>> trend_rate([10, 20, 20]) is None
    True
    """
    if len(history) < TREND_WINDOW:
        return None
    first, middle, last = history[-TREND_WINDOW:]
    if not first < middle < last:
        return None
    return (last - first) // 2


@final
class TriggerEvaluator:
    """Decides, sample by sample, whether the relay server needs recovery."""

    __slots__ = ("_clock", "_config", "_logger", "_store")

    def __init__(
        self,
        config: WatchdogConfig,
        store: StateStore,
        logger: FilteringBoundLogger,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._logger = logger
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def record(self, sample: ResourceSample) -> None:
        """Persist the current readings and extend the bounded histories."""
        store = self._store
        store.write(current_key("cpu"), sample.cpu)
        store.write(current_key("combined_cpu"), sample.combined_cpu)
        store.write(current_key("memory"), sample.memory)
        store.write(current_key("fd"), sample.fds)
        store.write(current_key("uptime"), sample.uptime)
        store.write(current_key("encoders"), sample.encoders)
        size = self._config.history_size
        store.append(CPU_HISTORY_KEY, sample.cpu, max_lines=size)
        store.append(MEMORY_HISTORY_KEY, sample.memory, max_lines=size)

    def history(self, key: str) -> list[int]:
        """Return the numeric samples stored under ``key``, oldest first."""
        return [
            int(line)
            for line in self._store.read_lines(key)
            if line.lstrip("-").isdigit()
        ]

    def evaluate(self, sample: ResourceSample | None) -> Trigger | None:
        """Return the first condition that calls for recovery, if any.

        Args:
            sample: Current readings, or None if the relay is not running.
        """
        if sample is None:
            return Trigger(TriggerKind.NOT_RUNNING, "relay server not running")
        for check in (
            self._emergency,
            self._trend,
            self._sustained_cpu,
            self._sustained_memory,
        ):
            trigger = check(sample)
            if trigger is not None:
                return trigger
        self._warnings(sample)
        return self._scheduled(sample)

    def _emergency(self, sample: ResourceSample) -> Trigger | None:
        config = self._config
        reason: str | None = None
        if sample.combined_cpu >= config.combined_cpu_threshold:
            reason = f"combined CPU {sample.combined_cpu}%"
        elif sample.cpu >= config.emergency_cpu:
            reason = f"relay CPU {sample.cpu}%"
        elif sample.memory >= config.emergency_memory:
            reason = f"relay memory {sample.memory}%"
        elif sample.fds >= config.fd_threshold:
            reason = f"{sample.fds} open file descriptors"
        if reason is None:
            return None
        self._logger.error("resource_emergency", reason=reason, relay_pid=sample.pid)
        return Trigger(TriggerKind.EMERGENCY, f"emergency {reason}")

    def _trend(self, sample: ResourceSample) -> Trigger | None:
        config = self._config
        steep: list[str] = []
        for metric, key in (("cpu", CPU_HISTORY_KEY), ("memory", MEMORY_HISTORY_KEY)):
            rate = trend_rate(self.history(key))
            if rate is None:
                continue
            self._store.write(f"{WATCHDOG_DIR}/{metric}_trend", rate)
            if rate > config.trend_steep_rate:
                steep.append(f"{metric} +{rate}%/period")
            elif rate > config.trend_notice_rate:
                self._logger.info("resource_trending_up", metric=metric, rate=rate)
        if not steep:
            return None

        now = self._now()
        last = self._store.read_int(LAST_TREND_KEY, 0) or 0
        if now - last < config.trend_cooldown:
            self._logger.info("trend_recovery_rate_limited", trends=steep)
            return None
        self._store.write(LAST_TREND_KEY, now)
        self._logger.warning("resource_trend_steep", trends=steep, relay_pid=sample.pid)
        return Trigger(TriggerKind.TREND, f"preventive restart ({', '.join(steep)})")

    def _sustained(
        self,
        key: str,
        value: int,
        threshold: int,
        periods: int,
        metric: str,
    ) -> bool:
        count = self._store.read_int(key, 0) or 0
        if value < threshold:
            if count > 0:
                self._logger.info(f"{metric}_normalized", value=value)
                self._store.write(key, 0)
            return False
        count += 1
        self._logger.warning(
            f"{metric}_high",
            value=value,
            threshold=threshold,
            periods=f"{count}/{periods}",
        )
        if count >= periods:
            self._store.write(key, 0)
            return True
        self._store.write(key, count)
        return False

    def _sustained_cpu(self, sample: ResourceSample) -> Trigger | None:
        config = self._config
        if self._sustained(
            HIGH_CPU_KEY,
            sample.cpu,
            config.cpu_threshold,
            config.cpu_sustained_periods,
            "cpu",
        ):
            return Trigger(
                TriggerKind.SUSTAINED_CPU, f"sustained high CPU usage ({sample.cpu}%)"
            )
        return None

    def _sustained_memory(self, sample: ResourceSample) -> Trigger | None:
        config = self._config
        if self._sustained(
            HIGH_MEMORY_KEY,
            sample.memory,
            config.memory_threshold,
            config.memory_sustained_periods,
            "memory",
        ):
            return Trigger(
                TriggerKind.SUSTAINED_MEMORY,
                f"sustained high memory usage ({sample.memory}%)",
            )
        return None

    def _warnings(self, sample: ResourceSample) -> None:
        config = self._config
        approaching: dict[str, int] = {}
        if config.combined_cpu_warning <= sample.combined_cpu:
            approaching["combined_cpu"] = sample.combined_cpu
        if config.cpu_warning <= sample.cpu < config.cpu_threshold:
            approaching["cpu"] = sample.cpu
        if config.memory_warning <= sample.memory < config.memory_threshold:
            approaching["memory"] = sample.memory
        if config.fd_warning <= sample.fds:
            approaching["fds"] = sample.fds
        if not approaching:
            return

        now = self._now()
        last = self._store.read_int(LAST_WARNING_KEY, 0) or 0
        if now - last < config.warning_interval:
            return
        self._store.write(LAST_WARNING_KEY, now)
        self._logger.warning(
            "resources_approaching_threshold", relay_pid=sample.pid, **approaching
        )

    def _scheduled(self, sample: ResourceSample) -> Trigger | None:
        if sample.uptime < self._config.max_uptime:
            return None
        self._logger.info("relay_max_uptime_reached", uptime=sample.uptime)
        return Trigger(
            TriggerKind.SCHEDULED,
            f"scheduled restart after {sample.uptime}s uptime",
        )
