import subprocess
import sys
from collections.abc import Iterator

import pytest

from streamwarden.coordination import ProcessRecord, ProcessRole, encoder_pid_key
from streamwarden.runtime import Runtime
from streamwarden.supervisor import ProcessTerminator, TerminationResult
from tests.conftest import logged_events

IGNORE_SIGTERM = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "print('ready', flush=True)\n"
    "time.sleep(60)\n"
)


@pytest.fixture
def children() -> Iterator[list[subprocess.Popen[bytes]]]:
    spawned: list[subprocess.Popen[bytes]] = []
    yield spawned
    for child in spawned:
        if child.poll() is None:
            child.kill()
        _ = child.wait()


def _spawn(
    runtime: Runtime,
    children: list[subprocess.Popen[bytes]],
    code: str = "import time; time.sleep(60)",
) -> ProcessRecord:
    child = subprocess.Popen(
        [sys.executable, "-c", code],
        stdout=subprocess.PIPE,
        start_new_session=True,
    )
    children.append(child)
    if child.stdout is not None and "ready" in code:
        _ = child.stdout.readline()
    record = runtime.identities.record(
        encoder_pid_key("mic"), child.pid, role=ProcessRole.ENCODER, identity="mic"
    )
    assert record is not None
    return record


@pytest.fixture
def terminator(runtime: Runtime) -> ProcessTerminator:
    return ProcessTerminator(runtime.identities, poll_interval=0.02)


class TestRequestStop:
    def test_terminates_cooperative_process(
        self,
        runtime: Runtime,
        terminator: ProcessTerminator,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        record = _spawn(runtime, children)

        assert terminator.request_stop(record, 5.0) is TerminationResult.TERMINATED
        assert not runtime.identities.is_alive_record(record)

    def test_times_out_when_sigterm_ignored(
        self,
        runtime: Runtime,
        terminator: ProcessTerminator,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        record = _spawn(runtime, children, IGNORE_SIGTERM)

        assert terminator.request_stop(record, 0.3) is TerminationResult.TIMED_OUT
        assert runtime.identities.is_alive_record(record)

    def test_dead_record_is_already_gone(
        self,
        runtime: Runtime,
        terminator: ProcessTerminator,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        record = _spawn(runtime, children)
        children[0].kill()
        _ = children[0].wait()

        assert terminator.request_stop(record, 1.0) is TerminationResult.ALREADY_GONE

    def test_recycled_pid_is_never_signalled(
        self,
        runtime: Runtime,
        terminator: ProcessTerminator,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        record = _spawn(runtime, children)
        impostor = ProcessRecord(
            pid=record.pid,
            marker=record.marker + 1,
            role=record.role,
            identity=record.identity,
            key=record.key,
        )

        assert terminator.terminate(impostor, 0.2) is TerminationResult.ALREADY_GONE
        assert children[0].poll() is None


class TestTerminate:
    def test_escalates_to_sigkill(
        self,
        runtime: Runtime,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        terminator = ProcessTerminator(
            runtime.identities,
            poll_interval=0.02,
            logger=runtime.logger,
        )
        record = _spawn(runtime, children, IGNORE_SIGTERM)

        assert terminator.terminate(record, 0.2) is TerminationResult.TERMINATED
        assert not runtime.identities.is_alive_record(record)
        assert children[0].wait(timeout=5) == -9
        assert "termination_escalated" in logged_events(runtime.logger)

    def test_force_stop(
        self,
        runtime: Runtime,
        terminator: ProcessTerminator,
        children: list[subprocess.Popen[bytes]],
    ) -> None:
        record = _spawn(runtime, children, IGNORE_SIGTERM)

        assert terminator.force_stop(record) is TerminationResult.TERMINATED
