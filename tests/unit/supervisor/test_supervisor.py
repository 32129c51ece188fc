import os
import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Literal

import anyio
import pytest

from streamwarden.config import Codec
from streamwarden.coordination import (
    ClaimOutcome,
    encoder_pid_key,
    supervisor_pid_key,
)
from streamwarden.devices import DeviceInfo, EncoderSettings
from streamwarden.exceptions import RestartCapReachedError
from streamwarden.runtime import Runtime
from streamwarden.supervisor import (
    RestartPolicy,
    StopReason,
    StreamEvent,
    StreamEventType,
    StreamPhase,
    StreamSpec,
    StreamSupervisor,
)
from tests.conftest import SandboxPaths, events_named

SLEEPER = (sys.executable, "-c", "import time; time.sleep(30)")
FAILER = (sys.executable, "-c", "import sys; sys.exit(3)")
CHATTY = (
    sys.executable,
    "-c",
    "import sys, time\n"
    "print('frame=1', flush=True)\n"
    "print('underrun', file=sys.stderr, flush=True)\n"
    "time.sleep(0.5)\n"
    "sys.exit(1)\n",
)


class RecordingSink:
    def __init__(self) -> None:
        self.lines: list[tuple[str, str]] = []
        self.events: list[StreamEvent] = []

    async def write_line(
        self,
        identity: str,
        pid: int,
        stream: Literal["stdout", "stderr"],
        line: str,
    ) -> None:
        self.lines.append((stream, line))

    async def write_event(self, identity: str, event: StreamEvent) -> None:
        self.events.append(event)


class CountingBuilder:
    def __init__(self, argv: tuple[str, ...]) -> None:
        self.argv = argv
        self.identities: list[str] = []

    def __call__(self, identity: str) -> tuple[str, ...]:
        self.identities.append(identity)
        return self.argv


@pytest.fixture
def device(sandbox: SandboxPaths) -> DeviceInfo:
    (sandbox.dev_root / "snd" / "pcmC1D0c").touch()
    return DeviceInfo(name="usb-Lab_Mic-00", card=1, card_id="labmic")


@pytest.fixture
def spec(device: DeviceInfo) -> StreamSpec:
    return StreamSpec(
        device=device,
        base_identity="lab-mic",
        settings=EncoderSettings(
            sample_rate=48000,
            channels=2,
            codec=Codec.OPUS,
            bitrate="128k",
            thread_queue_size=8192,
            analyze_duration=5000000,
            probe_size=5000000,
        ),
    )


def _supervisor(
    spec: StreamSpec,
    runtime: Runtime,
    builder: Callable[[str], tuple[str, ...]],
    sink: RecordingSink | None = None,
    **policy: float,
) -> StreamSupervisor:
    return StreamSupervisor(
        spec,
        runtime,
        sink or RecordingSink(),
        RestartPolicy(**{"restart_delay": 0.0, "cooldown_delay": 0.0, **policy}),  # pyright: ignore[reportArgumentType]
        command_builder=builder,
        poll_interval=0.02,
    )


def _assert_released(runtime: Runtime, identity: str) -> None:
    assert not runtime.run_store.exists(encoder_pid_key(identity))
    assert not runtime.run_store.exists(supervisor_pid_key(identity))
    assert runtime.locks.probe(f"claims/{identity}") is None


class TestClaiming:
    def test_already_running_does_not_spawn(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        existing = runtime.claims.claim("lab-mic", spec.device.device_ref)
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(spec, runtime, builder)

        reason = anyio.run(lambda: supervisor.run(handle_signals=False))

        assert existing.outcome is ClaimOutcome.CLAIMED
        assert reason is StopReason.ALREADY_RUNNING
        assert supervisor.state.phase is StreamPhase.STOPPED
        assert builder.identities == []
        runtime.claims.release(existing)

    def test_colliding_base_gets_suffix(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        other = runtime.claims.claim("lab-mic", "usb-Other_Mic-00")
        builder = CountingBuilder(FAILER)
        supervisor = _supervisor(spec, runtime, builder, max_restarts=0)

        with pytest.raises(RestartCapReachedError):
            anyio.run(lambda: supervisor.run(handle_signals=False))

        assert builder.identities == ["lab-mic_1"]
        runtime.claims.release(other)


class TestRestartCap:
    def test_stops_for_good_after_cap(self, spec: StreamSpec, runtime: Runtime) -> None:
        builder = CountingBuilder(FAILER)
        supervisor = _supervisor(spec, runtime, builder, max_restarts=2)

        with pytest.raises(RestartCapReachedError) as exc_info:
            anyio.run(lambda: supervisor.run(handle_signals=False))

        assert exc_info.value.restarts == 3
        assert exc_info.value.identity == "lab-mic"
        assert len(builder.identities) == 3
        assert supervisor.state.phase is StreamPhase.STOPPED
        assert supervisor.state.stop_reason is StopReason.RESTART_CAP
        assert events_named(runtime.logger, "restart_cap_reached")
        _assert_released(runtime, "lab-mic")


class TestExitChecks:
    def test_cleanup_marker_prevents_any_start(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        runtime.markers.begin_cleanup()
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(spec, runtime, builder)

        reason = anyio.run(lambda: supervisor.run(handle_signals=False))

        assert reason is StopReason.CLEANUP
        assert builder.identities == []
        _assert_released(runtime, "lab-mic")

    def test_cleanup_marker_interrupts_backoff(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        builder = CountingBuilder(FAILER)
        supervisor = _supervisor(spec, runtime, builder, restart_delay=30.0)

        async def main() -> StopReason:
            async with anyio.create_task_group() as tg:

                async def mark_when_backing_off() -> None:
                    while supervisor.state.phase is not StreamPhase.BACKOFF:
                        await anyio.sleep(0.01)
                    runtime.markers.begin_cleanup()

                tg.start_soon(mark_when_backing_off)
                with anyio.fail_after(10):
                    return await supervisor.run(handle_signals=False)

        reason = anyio.run(main)

        assert reason is StopReason.CLEANUP
        assert len(builder.identities) == 1

    def test_device_removal_stops_running_encoder(
        self, spec: StreamSpec, runtime: Runtime, sandbox: SandboxPaths
    ) -> None:
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(spec, runtime, builder)
        node: Path = spec.device.capture_node(sandbox.dev_root)

        async def main() -> StopReason:
            async with anyio.create_task_group() as tg:

                async def unplug_when_running() -> None:
                    while supervisor.state.phase is not StreamPhase.RUNNING:
                        await anyio.sleep(0.01)
                    node.unlink()

                tg.start_soon(unplug_when_running)
                with anyio.fail_after(10):
                    return await supervisor.run(handle_signals=False)

        reason = anyio.run(main)

        assert reason is StopReason.DEVICE_REMOVED
        assert len(builder.identities) == 1
        _assert_released(runtime, "lab-mic")

    def test_replaced_encoder_record_stops_supervisor(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(spec, runtime, builder)

        async def main() -> StopReason:
            async with anyio.create_task_group() as tg:

                async def take_over() -> None:
                    while supervisor.state.phase is not StreamPhase.RUNNING:
                        await anyio.sleep(0.01)
                    runtime.run_store.write(encoder_pid_key("lab-mic"), 1)

                tg.start_soon(take_over)
                with anyio.fail_after(10):
                    return await supervisor.run(handle_signals=False)

        reason = anyio.run(main)

        assert reason is StopReason.RECORD_REPLACED


class TestRunning:
    def test_output_and_events_reach_sink(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        sink = RecordingSink()
        supervisor = _supervisor(
            spec, runtime, CountingBuilder(CHATTY), sink, max_restarts=0
        )

        with pytest.raises(RestartCapReachedError):
            anyio.run(lambda: supervisor.run(handle_signals=False))

        assert ("stdout", "frame=1") in sink.lines
        assert ("stderr", "underrun") in sink.lines
        kinds = [event.event_type for event in sink.events]
        assert kinds == [
            StreamEventType.STARTED,
            StreamEventType.EXITED,
            StreamEventType.STOPPED,
        ]
        exited = sink.events[1]
        assert exited.exit_code == 1
        assert exited.run_time is not None
        assert exited.run_time >= 0.4

    def test_request_stop_terminates_encoder(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(spec, runtime, builder)
        pids: list[int] = []

        async def main() -> StopReason:
            async with anyio.create_task_group() as tg:

                async def stop_when_running() -> None:
                    while supervisor.state.phase is not StreamPhase.RUNNING:
                        await anyio.sleep(0.01)
                    pids.append(supervisor.state.pid or 0)
                    supervisor.request_stop()

                tg.start_soon(stop_when_running)
                with anyio.fail_after(10):
                    return await supervisor.run(handle_signals=False)

        reason = anyio.run(main)

        assert reason is StopReason.SIGNAL
        assert not runtime.identities.start_marker(pids[0])
        _assert_released(runtime, "lab-mic")


class TestShortRunCooldown:
    def test_three_external_kills_earn_cooldown(
        self, spec: StreamSpec, runtime: Runtime
    ) -> None:
        builder = CountingBuilder(SLEEPER)
        supervisor = _supervisor(
            spec, runtime, builder, restart_delay=0.0, cooldown_delay=300.0
        )

        async def main() -> StopReason:
            async with anyio.create_task_group() as tg:

                async def kill_three_times() -> None:
                    killed: set[int] = set()
                    while len(killed) < 3:
                        pid = supervisor.state.pid
                        running = supervisor.state.phase is StreamPhase.RUNNING
                        if running and pid is not None and pid not in killed:
                            os.killpg(pid, signal.SIGKILL)
                            killed.add(pid)
                        await anyio.sleep(0.01)
                    while supervisor.state.phase is not StreamPhase.BACKOFF:
                        await anyio.sleep(0.01)
                    await anyio.sleep(0.5)
                    supervisor.request_stop()

                tg.start_soon(kill_three_times)
                with anyio.fail_after(20):
                    return await supervisor.run(handle_signals=False)

        reason = anyio.run(main)

        assert reason is StopReason.SIGNAL
        backoffs = events_named(runtime.logger, "encoder_backoff")
        assert [b["action"] for b in backoffs] == ["flat", "flat", "cooldown"]
        assert backoffs[-1]["delay"] == 300.0
        assert supervisor.state.short_runs == 0
        # No fourth start during the cooldown
        assert len(builder.identities) == 3
        exits = events_named(runtime.logger, "encoder_exited")
        assert all(e["short_run"] for e in exits)
