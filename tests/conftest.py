"""Shared test fixtures for streamwarden tests."""

import logging
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import structlog
from rich.console import Console
from structlog.testing import CapturingLogger

from streamwarden.config import Config
from streamwarden.coordination import (
    ClaimResult,
    ProcessRole,
    encoder_pid_key,
    supervisor_pid_key,
)
from streamwarden.devices import DeviceInfo
from streamwarden.orchestrator import ProcessLauncher
from streamwarden.runtime import Runtime, create_runtime
from streamwarden.supervisor import stream_spec_for
from streamwarden.utils import spawn_detached


@dataclass(frozen=True, slots=True)
class SandboxPaths:
    """Directories standing in for the system locations."""

    run_dir: Path
    state_dir: Path
    log_dir: Path
    fallback_dir: Path
    proc_root: Path
    dev_root: Path


def write_proc_stat(
    proc_root: Path,
    pid: int,
    starttime: int,
    *,
    state: str = "S",
    comm: str = "ffmpeg",
    cmdline: tuple[str, ...] = (),
) -> None:
    """Write a ``/proc/<pid>/stat`` (and optionally ``cmdline``) entry.

    Fields after the command name are: state, 18 placeholder fields, then
    ``starttime`` as field 22.
    """
    proc_dir = proc_root / str(pid)
    proc_dir.mkdir(parents=True, exist_ok=True)
    filler = " ".join(["0"] * 18)
    (proc_dir / "stat").write_text(f"{pid} ({comm}) {state} {filler} {starttime} 0 0\n")
    if cmdline:
        (proc_dir / "cmdline").write_bytes(b"\0".join(a.encode() for a in cmdline))


def add_usb_device(
    sandbox: SandboxPaths, card: int, name: str, usb_id: str = "0d8c:0014"
) -> None:
    """Create the device nodes and procfs entries of one USB capture card."""
    snd = sandbox.dev_root / "snd"
    by_id = snd / "by-id"
    by_id.mkdir(parents=True, exist_ok=True)
    (snd / f"controlC{card}").touch()
    (snd / f"pcmC{card}D0c").touch()
    (by_id / name).symlink_to(snd / f"controlC{card}")
    card_dir = sandbox.proc_root / "asound" / f"card{card}"
    card_dir.mkdir(parents=True, exist_ok=True)
    _ = (card_dir / "usbid").write_text(f"{usb_id}\n")


class FakeLauncher:
    """Stands in for supervisor processes.

    Each launch claims an identity from the test process and spawns two
    sleeping processes recorded as that stream's supervisor and encoder.
    """

    def __init__(
        self, runtime: Runtime, *, failing: frozenset[str] = frozenset()
    ) -> None:
        self.runtime = runtime
        self.failing = failing
        self.claims: list[ClaimResult] = []
        self.launched: list[str] = []

    def launch(self, device: DeviceInfo) -> int | None:
        if device.name in self.failing:
            return None
        spec = stream_spec_for(device, self.runtime.config)
        claim = self.runtime.claims.claim(spec.base_identity, device.device_ref)
        self.claims.append(claim)
        supervisor = spawn_detached(("sleep", "60"))
        encoder = spawn_detached(("sleep", "60"))
        assert supervisor is not None
        assert encoder is not None
        identities = self.runtime.identities
        _ = identities.record(
            supervisor_pid_key(claim.identity),
            supervisor,
            role=ProcessRole.SUPERVISOR,
            identity=claim.identity,
        )
        _ = identities.record(
            encoder_pid_key(claim.identity),
            encoder,
            role=ProcessRole.ENCODER,
            identity=claim.identity,
        )
        self.launched.append(device.name)
        return supervisor

    def is_alive(self, pid: int) -> bool:
        return ProcessLauncher().is_alive(pid)

    def release(self) -> None:
        for claim in self.claims:
            self.runtime.claims.release(claim)
        self.claims.clear()


def free_port() -> int:
    """Return a TCP port that nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def remove_proc_entry(proc_root: Path, pid: int) -> None:
    proc_dir = proc_root / str(pid)
    for child in proc_dir.iterdir():
        child.unlink()
    proc_dir.rmdir()


def _keep_event_dict(
    _logger: object, _method: str, event_dict: structlog.typing.EventDict
) -> structlog.typing.EventDict:
    return event_dict


def make_logger(level: int = logging.DEBUG) -> structlog.typing.FilteringBoundLogger:
    """Return a logger whose calls are recorded on ``logger._logger.calls``.

    Each call reaches the capturing logger with the event dict as kwargs.
    """
    return structlog.wrap_logger(
        CapturingLogger(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=[_keep_event_dict],
    )


def logged_calls(
    logger: structlog.typing.FilteringBoundLogger,
) -> list[tuple[str, dict[str, Any]]]:
    """Return ``(method, event_dict)`` for every call made through ``logger``."""
    capturing: CapturingLogger = logger._logger  # pyright: ignore[reportAttributeAccessIssue]
    return [(call.method_name, dict(call.kwargs)) for call in capturing.calls]


def logged_events(logger: structlog.typing.FilteringBoundLogger) -> list[str]:
    return [event_dict["event"] for _, event_dict in logged_calls(logger)]


def events_named(
    logger: structlog.typing.FilteringBoundLogger, event: str
) -> list[dict[str, Any]]:
    return [d for _, d in logged_calls(logger) if d.get("event") == event]


@pytest.fixture
def sandbox(tmp_path: Path) -> SandboxPaths:
    paths = SandboxPaths(
        run_dir=tmp_path / "run",
        state_dir=tmp_path / "state",
        log_dir=tmp_path / "log",
        fallback_dir=tmp_path / "fallback",
        proc_root=tmp_path / "proc",
        dev_root=tmp_path / "dev",
    )
    for directory in (paths.proc_root, paths.dev_root / "snd"):
        directory.mkdir(parents=True)
    return paths


def sandbox_config(sandbox: SandboxPaths, **sections: dict[str, Any]) -> Config:
    """Configuration pointing every directory into the sandbox with short waits.

    Keyword arguments are configuration sections merged over the defaults.
    """
    data: dict[str, Any] = {
        "paths": {
            "run_dir": str(sandbox.run_dir),
            "state_dir": str(sandbox.state_dir),
            "log_dir": str(sandbox.log_dir),
            "fallback_dir": str(sandbox.fallback_dir),
        },
        "locks": {"claim_timeout": 0.2, "poll_interval": 0.01},
        "supervisor": {
            "restart_delay": 0.0,
            "cooldown_delay": 0.0,
            "spawn_check_delay": 0.0,
            "termination_timeout": 0.5,
        },
    }
    for section, values in sections.items():
        data[section] = {**data.get(section, {}), **values}
    return Config.from_dict(data)


@pytest.fixture
def config(sandbox: SandboxPaths) -> Config:
    return sandbox_config(sandbox)


@pytest.fixture
def logger() -> structlog.typing.FilteringBoundLogger:
    return make_logger()


@pytest.fixture
def runtime(
    config: Config,
    sandbox: SandboxPaths,
    logger: structlog.typing.FilteringBoundLogger,
) -> Runtime:
    """Runtime over the sandbox that still sees the real ``/proc``."""
    return create_runtime(
        config,
        component="test",
        logger=logger,
        dev_root=sandbox.dev_root,
    )


@pytest.fixture
def fake_runtime(
    config: Config,
    sandbox: SandboxPaths,
    logger: structlog.typing.FilteringBoundLogger,
) -> Runtime:
    """Runtime whose procfs is the sandbox's fake ``/proc``."""
    return create_runtime(
        config,
        component="test",
        logger=logger,
        proc_root=sandbox.proc_root,
        dev_root=sandbox.dev_root,
    )


@pytest.fixture
def console() -> Console:
    return Console(
        width=70,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )
