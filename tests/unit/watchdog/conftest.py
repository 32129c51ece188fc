"""Fixtures for watchdog unit tests."""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest
import structlog
from pytest_mock import MockerFixture

from streamwarden.coordination import RELAY_PID_KEY, ProcessRecord, ProcessRole
from streamwarden.exceptions import RelayStartError
from streamwarden.orchestrator import StreamOutcome
from streamwarden.runtime import Runtime, create_runtime
from streamwarden.supervisor import TerminationResult
from streamwarden.utils import ProcessUsage
from tests.conftest import SandboxPaths, make_logger, sandbox_config

NOW = 1_700_000_000

# Every delay a recovery level waits out
FAST_WATCHDOG: dict[str, Any] = {
    "grace_period": 0.0,
    "settle_delay": 0.0,
    "emergency_pause": 0.0,
    "recovery_pause": 0.0,
    "check_interval": 0.01,
    "health_timeout": 0.1,
    "aggressive_health_timeout": 0.1,
}


@dataclass(slots=True)
class FakeClock:
    now: float = NOW

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass(slots=True)
class FakeActions:
    """Records every process operation a recovery level performs."""

    pid: int | None = None
    healthy: bool = True
    start_fails: bool = False
    calls: list[str] = field(default_factory=list)

    def relay_pid(self) -> int | None:
        return self.pid

    def encoder_processes(self) -> list[int]:
        return []

    def stop_relay(self, grace: float | None = None) -> TerminationResult:
        self.calls.append("stop_relay")
        return TerminationResult.TERMINATED

    async def start_relay(self) -> ProcessRecord:
        self.calls.append("start_relay")
        if self.start_fails:
            msg = "Relay server died during startup"
            raise RelayStartError(msg)
        self.pid = os.getpid()
        return ProcessRecord(
            pid=self.pid,
            marker=1,
            role=ProcessRole.RELAY,
            identity="",
            key=RELAY_PID_KEY,
        )

    def stop_encoders(self) -> int:
        self.calls.append("stop_encoders")
        return 0

    def cleanup_relay_holders(self, *, force: bool = False) -> list[int]:
        self.calls.append("force_kill_relay" if force else "cleanup_relay_holders")
        return []

    def remove_stale_files(self) -> int:
        self.calls.append("remove_stale_files")
        return 0

    async def relay_healthy(self, timeout: float) -> bool:
        self.calls.append("relay_healthy")
        return self.healthy

    async def start_streams(self) -> list[StreamOutcome]:
        self.calls.append("start_streams")
        return [StreamOutcome(device="usb-Mic-00", identity="mic", validated=True)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def actions() -> FakeActions:
    return FakeActions(pid=os.getpid())


@pytest.fixture(autouse=True)
def idle_usage(mocker: MockerFixture) -> None:
    """Report an idle relay so health checks never measure real CPU."""
    _ = mocker.patch(
        "streamwarden.watchdog._recovery.process_usage",
        return_value=ProcessUsage(
            pid=1,
            cpu_percent=1.0,
            memory_percent=1.0,
            fds=10,
            threads=2,
            uptime=60.0,
        ),
    )


@pytest.fixture
def make_runtime(
    sandbox: SandboxPaths, logger: structlog.typing.FilteringBoundLogger
) -> Callable[..., Runtime]:
    def build(**watchdog: Any) -> Runtime:
        config = sandbox_config(
            sandbox,
            watchdog={**FAST_WATCHDOG, **watchdog},
            locks={"acquisition_timeout": 0.2},
        )
        return create_runtime(
            config, component="watchdog", logger=logger, dev_root=sandbox.dev_root
        )

    return build


@pytest.fixture
def recovery_log() -> structlog.typing.FilteringBoundLogger:
    return make_logger()
