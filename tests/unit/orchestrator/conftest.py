"""Fixtures for orchestrator unit tests."""

import stat
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest
import structlog
from pytest_mock import MockerFixture

from streamwarden.devices import DeviceCatalog
from streamwarden.orchestrator import Orchestrator
from streamwarden.relay import PATHS_LIST, RelayClient, RelayServer
from streamwarden.runtime import Runtime, create_runtime
from tests.conftest import FakeLauncher, SandboxPaths, free_port, sandbox_config

SLEEPING_RELAY = "import time\ntime.sleep(60)\n"
PATHS_GET_PREFIX = "/v3/paths/get/"


@pytest.fixture(autouse=True)
def no_audio_reset(mocker: MockerFixture) -> None:
    """Keep cleanup sweeps from touching the host's ALSA state."""
    _ = mocker.patch(
        "streamwarden.orchestrator._sweep.spawn_detached", return_value=None
    )


@dataclass(slots=True)
class RelayApi:
    """In-memory relay control API; streams listed in ``ready`` report ready."""

    ready: set[str] | None = None
    queried: list[str] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == PATHS_LIST:
            return httpx.Response(200, json={"items": []})
        if path.startswith(PATHS_GET_PREFIX):
            name = unquote(path.removeprefix(PATHS_GET_PREFIX))
            self.queried.append(name)
            ready = self.ready is None or name in self.ready
            return httpx.Response(200, json={"name": name, "ready": ready})
        return httpx.Response(404)

    def client(self) -> RelayClient:
        return RelayClient(
            "http://relay.test:9997", transport=httpx.MockTransport(self.handle)
        )


@dataclass(slots=True)
class Harness:
    runtime: Runtime
    orchestrator: Orchestrator
    launcher: FakeLauncher
    api: RelayApi
    catalog: DeviceCatalog


def _write_relay(directory: Path) -> Path:
    script = directory / "fake-mediamtx"
    _ = script.write_text(f"#!{sys.executable}\n{SLEEPING_RELAY}")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


@pytest.fixture
def make_harness(
    sandbox: SandboxPaths,
    tmp_path: Path,
    logger: structlog.typing.FilteringBoundLogger,
) -> Iterator[Callable[..., Harness]]:
    harnesses: list[Harness] = []

    def build(**sections: dict[str, object]) -> Harness:
        defaults: dict[str, dict[str, object]] = {
            "relay": {
                "binary": str(_write_relay(tmp_path)),
                "rtsp_port": free_port(),
                "api_port": free_port(),
                "metrics_port": free_port(),
                "api_timeout": 1.0,
                "stop_timeout": 2.0,
            },
            "encoder": {"binary": sys.executable},
            "startup": {
                "usb_stabilization_delay": 0.5,
                "restart_stabilization_delay": 0.5,
                "stabilization_poll_interval": 0.01,
                "stream_startup_delay": 0.0,
                "validation_attempts": 2,
                "validation_delay": 0.0,
                "supervisor_join_timeout": 2.0,
                "cleanup_wait_timeout": 1.0,
                "restart_pause": 0.0,
            },
            "locks": {"acquisition_timeout": 0.5, "stop_timeout": 0.2},
        }
        for section, values in sections.items():
            defaults[section] = {**defaults.get(section, {}), **values}
        config = sandbox_config(sandbox, **defaults)
        runtime = create_runtime(
            config, component="test", logger=logger, dev_root=sandbox.dev_root
        )
        api = RelayApi()
        launcher = FakeLauncher(runtime)
        catalog = DeviceCatalog(
            dev_root=sandbox.dev_root,
            proc_root=sandbox.proc_root,
            retries=1,
            sleep=lambda _: None,
        )
        orchestrator = Orchestrator(
            runtime,
            devices=catalog,
            relay=RelayServer(runtime, client_factory=api.client),
            launcher=launcher,
        )
        harness = Harness(runtime, orchestrator, launcher, api, catalog)
        harnesses.append(harness)
        return harness

    yield build

    for harness in harnesses:
        harness.launcher.release()
        _ = harness.orchestrator.force_stop()
