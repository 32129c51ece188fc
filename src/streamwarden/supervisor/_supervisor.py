"""Stream supervisor: keeps one encoder alive for one capture device.

A supervisor runs in its own OS process and walks a small state machine:

    CLAIMING -> STARTING -> RUNNING -> BACKOFF -> STARTING -> ...

with STOPPED reachable from every state. Before each start and after each
sleep it re-checks the conditions under which it must give up instead of
restarting: a cleanup sweep in progress, the device gone, or its claim or
PID records removed or replaced by someone else.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from typing import TYPE_CHECKING, Literal, final

import anyio
import anyio.abc
import anyio.to_thread
from anyio.streams.text import TextReceiveStream

from streamwarden.coordination import (
    ProcessRole,
    encoder_pid_key,
    supervisor_pid_key,
)
from streamwarden.exceptions import EncoderStartError, RestartCapReachedError
from streamwarden.utils import create_stream_logger

from ._backoff import RestartPolicy
from ._encoder import build_encoder_command
from ._models import (
    StopReason,
    StreamEvent,
    StreamEventType,
    StreamPhase,
    StreamSpec,
    StreamState,
)
from ._output import StreamLogSink
from ._termination import ProcessTerminator

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from streamwarden.coordination import ClaimResult, ProcessRecord
    from streamwarden.runtime import Runtime

    from ._protocol import OutputSink

    CommandBuilder = Callable[[str], Sequence[str]]

DEFAULT_POLL_INTERVAL: float = 1.0


def _get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    import pendulum  # noqa: PLC0415

    return pendulum.now("UTC").to_iso8601_string()


@final
class StreamSupervisor:
    """Supervises the encoder of one capture device.

    Attributes:
        spec: What this supervisor streams.
        state: Mutable runtime state.
    """

    __slots__ = (
        "_claim",
        "_command_builder",
        "_encoder_record",
        "_logger",
        "_output_sink",
        "_poll_interval",
        "_policy",
        "_runtime",
        "_stop_event",
        "_stop_reason",
        "_supervisor_record",
        "_terminator",
        "spec",
        "state",
    )

    def __init__(
        self,
        spec: StreamSpec,
        runtime: Runtime,
        output_sink: OutputSink | None = None,
        policy: RestartPolicy | None = None,
        *,
        command_builder: CommandBuilder | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the supervisor.

        Args:
            spec: Device, base identity and encoder settings.
            runtime: Process runtime context.
            output_sink: Sink for encoder output and events. Defaults to the
                stream's own log, opened once the identity is claimed.
            policy: Restart policy. Defaults to the configured one.
            command_builder: Maps the claimed identity to the encoder argv.
            poll_interval: Seconds between exit-condition checks while the
                encoder runs or the supervisor sleeps.
        """
        self.spec = spec
        self.state = StreamState()
        self._runtime = runtime
        self._output_sink = output_sink
        self._policy = policy or RestartPolicy.from_config(runtime.config.supervisor)
        self._command_builder = command_builder or self._default_command
        self._poll_interval = poll_interval
        self._logger = runtime.logger.bind(device=spec.device.name)
        self._terminator = ProcessTerminator(runtime.identities, logger=self._logger)
        self._claim: ClaimResult | None = None
        self._supervisor_record: ProcessRecord | None = None
        self._encoder_record: ProcessRecord | None = None
        self._stop_reason: StopReason | None = None
        self._stop_event: anyio.Event | None = None

    @property
    def identity(self) -> str | None:
        return self.state.identity

    def _default_command(self, identity: str) -> tuple[str, ...]:
        config = self._runtime.config
        return build_encoder_command(
            config.encoder.binary,
            self.spec.device,
            self.spec.settings,
            config.relay.stream_url(identity),
        )

    @property
    def _grace(self) -> float:
        return self._runtime.config.supervisor.termination_timeout

    async def emit_event(
        self,
        event_type: StreamEventType,
        *,
        message: str | None = None,
        exit_code: int | None = None,
        run_time: float | None = None,
    ) -> None:
        """Emit a stream lifecycle event to the output sink."""
        if self._output_sink is None or self.state.identity is None:
            return
        event = StreamEvent(
            identity=self.state.identity,
            event_type=event_type,
            timestamp=_get_timestamp(),
            pid=self.state.pid,
            exit_code=exit_code,
            run_time=run_time,
            message=message,
        )
        try:  # noqa: SIM105
            await self._output_sink.write_event(self.state.identity, event)
        except Exception:  # noqa: BLE001, S110
            # Output sink errors should not crash the supervisor
            pass

    def request_stop(self) -> None:
        """Ask the supervisor to stop its encoder and exit."""
        if self._stop_reason is None:
            self._stop_reason = StopReason.SIGNAL
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self, *, handle_signals: bool = True) -> StopReason:
        """Claim an identity and keep the encoder running until told to stop.

        Args:
            handle_signals: Turn SIGTERM and SIGINT into a graceful stop.

        Returns:
            Why the supervisor stopped.

        Raises:
            ClaimExhaustedError: If no identity could be claimed.
            RestartCapReachedError: If the encoder was restarted too often.
        """
        self._stop_event = anyio.Event()
        self.state.phase = StreamPhase.CLAIMING
        claim = await anyio.to_thread.run_sync(
            self._runtime.claims.claim,
            self.spec.base_identity,
            self.spec.device.device_ref,
        )
        self.state.identity = claim.identity
        if not claim.claimed:
            self._logger.info("stream_already_running", identity=claim.identity)
            await self._finish(StopReason.ALREADY_RUNNING)
            return StopReason.ALREADY_RUNNING

        self._claim = claim
        self._logger = self._logger.bind(identity=claim.identity)
        if self._output_sink is None:
            self._output_sink = StreamLogSink(
                create_stream_logger(self._runtime.config, claim.identity)
            )
        self._supervisor_record = self._runtime.identities.record(
            supervisor_pid_key(claim.identity),
            os.getpid(),
            role=ProcessRole.SUPERVISOR,
            identity=claim.identity,
        )
        self._logger.info(
            "supervisor_started",
            base_identity=self.spec.base_identity,
            matched_by=self.spec.settings.matched_by,
        )

        reason = StopReason.SIGNAL
        try:
            async with anyio.create_task_group() as tg:
                if handle_signals:
                    tg.start_soon(self._handle_signals)
                reason = await self._loop()
                tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(self._release)
                await self._finish(reason)

        if reason is StopReason.RESTART_CAP:
            msg = (
                f"Stream '{claim.identity}' restarted {self.state.restart_count} "
                "times; manual intervention required"
            )
            raise RestartCapReachedError(
                msg, identity=claim.identity, restarts=self.state.restart_count
            )
        return reason

    async def _handle_signals(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                self._logger.info("supervisor_signal", signal=signum.name)
                self.request_stop()
                break

    async def _loop(self) -> StopReason:
        while True:
            reason = await self._exit_check()
            if reason is not None:
                return reason

            run_time = await self._run_once(self.state.identity or "")

            reason = await self._exit_check()
            if reason is not None:
                return reason

            decision = self._policy.decide(
                self.state.restart_count, self.state.short_runs, run_time
            )
            self.state.restart_count = decision.restart_count
            self.state.short_runs = decision.short_runs
            if decision.stop:
                self._logger.error(
                    "restart_cap_reached",
                    restarts=decision.restart_count,
                    max_restarts=self._policy.max_restarts,
                )
                return StopReason.RESTART_CAP

            self.state.phase = StreamPhase.BACKOFF
            self._logger.info(
                "encoder_backoff",
                action=decision.action.value,
                delay=decision.delay,
                restart_count=decision.restart_count,
                short_runs=decision.short_runs,
            )
            restart_count = decision.restart_count
            max_restarts = self._policy.max_restarts
            await self.emit_event(
                StreamEventType.RESTARTING,
                message=(
                    f"Restarting in {decision.delay:.1f}s "
                    f"(attempt {restart_count}/{max_restarts})"
                ),
            )

            reason = await self._backoff(decision.delay)
            if reason is not None:
                return reason

    async def _backoff(self, delay: float) -> StopReason | None:
        """Sleep ``delay`` seconds, re-checking exit conditions while waiting."""
        deadline = anyio.current_time() + delay
        while (remaining := deadline - anyio.current_time()) > 0:
            await self._wait_for_stop(min(self._poll_interval, remaining))
            reason = await self._exit_check()
            if reason is not None:
                return reason
        return None

    async def _wait_for_stop(self, timeout: float) -> None:
        if self._stop_event is None:
            await anyio.sleep(timeout)
            return
        with anyio.move_on_after(timeout):
            await self._stop_event.wait()

    async def _exit_check(self) -> StopReason | None:
        if self._stop_reason is not None:
            return self._stop_reason
        return await anyio.to_thread.run_sync(self._check_exit_conditions)

    def _check_exit_conditions(self) -> StopReason | None:
        """Return the reason to stop, if any condition for it holds."""
        runtime = self._runtime
        if runtime.markers.cleanup_in_progress():
            return StopReason.CLEANUP
        if not self.spec.device.capture_node(runtime.dev_root).exists():
            return StopReason.DEVICE_REMOVED
        if not self._claim_intact():
            return StopReason.CLAIM_LOST
        for record in (self._supervisor_record, self._encoder_record):
            if record is not None and not runtime.identities.is_current(record):
                return StopReason.RECORD_REPLACED
        return None

    def _claim_intact(self) -> bool:
        if self._claim is None or self._claim.handle is None:
            return False
        handle = self._claim.handle
        try:
            inode = handle.path.stat().st_ino
        except OSError:
            return False
        if inode != handle.inode:
            return False
        holder = self._runtime.locks.holder(handle.name)
        return holder is not None and holder.pid == os.getpid()

    async def _spawn(self, identity: str) -> tuple[anyio.abc.Process, tuple[str, ...]]:
        argv = tuple(self._command_builder(identity))
        try:
            process = await anyio.open_process(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            msg = f"Failed to start encoder for '{identity}': {e}"
            raise EncoderStartError(msg, identity=identity, cause=e) from e
        return process, argv

    async def _run_once(self, identity: str) -> float | None:
        """Start the encoder and wait for it to exit.

        Returns:
            Seconds the encoder ran, or None if it failed to start or died
            before the spawn check.
        """
        self.state.phase = StreamPhase.STARTING

        try:
            process, argv = await self._spawn(identity)
        except EncoderStartError as e:
            self._logger.error("encoder_spawn_failed", error=str(e))
            return None

        started = time.monotonic()
        self.state.pid = process.pid
        self.state.started_at = _get_timestamp()
        record = await anyio.to_thread.run_sync(self._record_encoder, process.pid)
        await anyio.sleep(self._runtime.config.supervisor.spawn_check_delay)

        alive = record is not None and await anyio.to_thread.run_sync(
            self._runtime.identities.is_alive_record, record
        )
        if alive:
            self._encoder_record = record
            self.state.phase = StreamPhase.RUNNING
            self._logger.info("encoder_started", encoder_pid=process.pid)
            await self.emit_event(StreamEventType.STARTED, message=" ".join(argv))

        try:
            exit_code = await self._watch(process, record if alive else None)
        finally:
            await process.aclose()
            if record is not None:
                _ = self._runtime.identities.forget_if_current(record)
            self._encoder_record = None

        run_time = time.monotonic() - started if alive else None
        self.state.last_exit_code = exit_code
        self.state.last_run_time = run_time
        if alive:
            self._logger.warning(
                "encoder_exited",
                encoder_pid=process.pid,
                exit_code=exit_code,
                run_time=round(time.monotonic() - started, 3),
                short_run=self._policy.is_short(run_time),
            )
        else:
            self._logger.error(
                "encoder_died_on_start", encoder_pid=process.pid, exit_code=exit_code
            )
        await self.emit_event(
            StreamEventType.EXITED, exit_code=exit_code, run_time=run_time
        )
        self.state.pid = None
        return run_time

    def _record_encoder(self, pid: int) -> ProcessRecord | None:
        identity = self.state.identity or ""
        return self._runtime.identities.record(
            encoder_pid_key(identity), pid, role=ProcessRole.ENCODER, identity=identity
        )

    async def _watch(
        self, process: anyio.abc.Process, record: ProcessRecord | None
    ) -> int:
        """Drain the encoder's output until it exits.

        While ``record`` is set, exit conditions are polled and the encoder
        is terminated as soon as one holds.
        """
        async with anyio.create_task_group() as tg:
            if process.stdout is not None:
                tg.start_soon(
                    self._stream_output, TextReceiveStream(process.stdout), "stdout"
                )
            if process.stderr is not None:
                tg.start_soon(
                    self._stream_output, TextReceiveStream(process.stderr), "stderr"
                )

            async with anyio.create_task_group() as monitor:
                if record is not None:
                    monitor.start_soon(self._monitor, record)
                exit_code = await process.wait()
                monitor.cancel_scope.cancel()
        return exit_code

    async def _monitor(self, record: ProcessRecord) -> None:
        while True:
            await self._wait_for_stop(self._poll_interval)
            reason = await self._exit_check()
            if reason is None:
                continue
            self._stop_reason = reason
            self._logger.info(
                "encoder_stopping", reason=reason.value, encoder_pid=record.pid
            )
            _ = await anyio.to_thread.run_sync(
                self._terminator.terminate, record, self._grace
            )
            return

    async def _stream_output(
        self,
        stream: TextReceiveStream,
        stream_name: Literal["stdout", "stderr"],
    ) -> None:
        """Stream output from a text stream to the output sink."""
        try:
            async for chunk in stream:
                for raw_line in chunk.splitlines():
                    pid = self.state.pid
                    if self._output_sink is None or pid is None:
                        continue
                    try:  # noqa: SIM105
                        await self._output_sink.write_line(
                            self.state.identity or "",
                            pid,
                            stream_name,
                            raw_line.rstrip("\r"),
                        )
                    except Exception:  # noqa: BLE001, S110
                        # Output sink errors should not crash streaming
                        pass
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Stream closed, which is expected on process exit
            pass

    def _release(self) -> None:
        """Stop the encoder if still running, then drop records and claim."""
        identities = self._runtime.identities
        if self._encoder_record is not None:
            _ = self._terminator.terminate(self._encoder_record, self._grace)
            _ = identities.forget_if_current(self._encoder_record)
            self._encoder_record = None
        if self._supervisor_record is not None:
            _ = identities.forget_if_current(self._supervisor_record)
            self._supervisor_record = None
        if self._claim is not None:
            self._runtime.claims.release(self._claim)
            self._claim = None

    async def _finish(self, reason: StopReason) -> None:
        self.state.phase = StreamPhase.STOPPED
        self.state.stop_reason = reason
        log = self._logger.info
        if reason is StopReason.RESTART_CAP:
            log = self._logger.error
        log(
            "supervisor_stopped",
            reason=reason.value,
            restarts=self.state.restart_count,
        )
        await self.emit_event(StreamEventType.STOPPED, message=reason.value)
