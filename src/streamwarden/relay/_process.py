"""Relay server process lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING, final

import anyio
import anyio.to_thread

from streamwarden.coordination import RELAY_PID_KEY, ProcessRole
from streamwarden.exceptions import DependencyMissingError, RelayStartError
from streamwarden.supervisor import ProcessTerminator, TerminationResult
from streamwarden.utils import (
    find_processes,
    get_relay_config_file,
    get_relay_log_file,
    rotate_log_file,
    runs_program,
    spawn_detached,
    tail_file,
    terminate_processes,
)

from ._client import RelayClient
from ._config import write_relay_config
from ._ports import check_ports

if TYPE_CHECKING:
    from collections.abc import Callable

    from streamwarden.coordination import ProcessRecord
    from streamwarden.runtime import Runtime
    from streamwarden.utils import ProcessMatch

    ClientFactory = Callable[[], RelayClient]

READY_POLL_INTERVAL: float = 1.0
SPAWN_CHECK_DELAY: float = 0.5


@final
class RelayServer:
    """Starts, stops and inspects the relay server process."""

    __slots__ = ("_client_factory", "_runtime", "_terminator")

    def __init__(
        self,
        runtime: Runtime,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._runtime = runtime
        self._client_factory = client_factory or self._default_client
        self._terminator = ProcessTerminator(runtime.identities, logger=runtime.logger)

    def _default_client(self) -> RelayClient:
        return RelayClient(self._runtime.config.relay.api_url)

    def client(self) -> RelayClient:
        """Return a new control API client; the caller closes it."""
        return self._client_factory()

    def record(self) -> ProcessRecord | None:
        """Return the persisted relay record, alive or not."""
        return self._runtime.identities.load(RELAY_PID_KEY, role=ProcessRole.RELAY)

    def running_record(self) -> ProcessRecord | None:
        """Return the relay record if its process is alive."""
        record = self.record()
        if self._runtime.identities.is_alive_record(record):
            return record
        return None

    def is_running(self) -> bool:
        return self.running_record() is not None

    def stray_processes(self) -> list[ProcessMatch]:
        """Return relay processes running our configuration without a live record."""
        config = self._runtime.config
        config_path = str(get_relay_config_file(config))
        binary = config.relay.binary
        recorded = self.running_record()

        def _match(argv: tuple[str, ...]) -> bool:
            return runs_program(argv, binary) and config_path in argv

        return [
            proc
            for proc in find_processes(_match)
            if recorded is None or proc.pid != recorded.pid
        ]

    def holders(self) -> list[ProcessMatch]:
        """Return every process executing the relay binary, including zombies."""
        binary = self._runtime.config.relay.binary
        return find_processes(lambda argv: runs_program(argv, binary))

    async def start(self) -> ProcessRecord:
        """Generate the configuration and start the relay server.

        Returns:
            The record of the running relay server.

        Raises:
            DependencyMissingError: If the relay binary is not installed.
            PortConflictError: If a relay port is already bound.
            RelayStartError: If the server dies or its API never answers.
        """
        runtime = self._runtime
        relay = runtime.config.relay
        if not runtime.has_command(relay.binary):
            msg = f"Relay server '{relay.binary}' not found on PATH"
            raise DependencyMissingError(msg, command=relay.binary)

        await anyio.to_thread.run_sync(check_ports, relay.ports)
        config_path = await anyio.to_thread.run_sync(write_relay_config, runtime)

        log_file = get_relay_log_file(runtime.config)
        if rotate_log_file(log_file, runtime.config.logging.relay_log_max_bytes):
            runtime.logger.info("relay_log_rotated", path=str(log_file))

        argv = (relay.binary, str(config_path))
        pid = spawn_detached(argv, output=log_file)
        if pid is None:
            msg = f"Failed to start relay server '{relay.binary}'"
            raise RelayStartError(msg)

        await anyio.sleep(SPAWN_CHECK_DELAY)
        record = runtime.identities.record(RELAY_PID_KEY, pid, role=ProcessRole.RELAY)
        if record is None:
            msg = "Relay server exited immediately after start"
            raise RelayStartError(msg, output_tail=tail_file(log_file))

        def _alive() -> bool:
            return runtime.identities.is_alive_record(record)

        async with self.client() as client:
            ready = await client.wait_ready(
                relay.api_timeout, interval=READY_POLL_INTERVAL, alive=_alive
            )

        if not ready:
            died = not _alive()
            await anyio.to_thread.run_sync(self._discard, record)
            msg = (
                "Relay server died during startup"
                if died
                else f"Relay server API not ready after {relay.api_timeout:.0f}s"
            )
            runtime.logger.error("relay_start_failed", relay_pid=pid, died=died)
            raise RelayStartError(msg, output_tail=tail_file(log_file))

        runtime.logger.info("relay_started", relay_pid=pid, config=str(config_path))
        return record

    def _discard(self, record: ProcessRecord) -> None:
        _ = self._terminator.force_stop(record)
        self._runtime.identities.forget(record.key)

    def stop(self, grace: float | None = None) -> TerminationResult:
        """Terminate the recorded relay server and drop its record."""
        record = self.record()
        if record is None:
            return TerminationResult.ALREADY_GONE
        timeout = self._runtime.config.relay.stop_timeout if grace is None else grace
        result = self._terminator.terminate(record, timeout)
        _ = self._runtime.identities.forget_if_current(record)
        self._runtime.logger.info("relay_stopped", result=result.value)
        return result

    def kill_strays(self, timeout: float = 5.0) -> list[int]:
        """Terminate relay processes that run our configuration unrecorded.

        Returns:
            PIDs that were signalled.
        """
        pids = [proc.pid for proc in self.stray_processes()]
        if pids:
            survivors = terminate_processes(pids, timeout)
            self._runtime.logger.warning(
                "relay_strays_terminated", pids=pids, survivors=survivors
            )
        return pids

    async def healthy(self, timeout: float) -> bool:
        """Return whether the relay is alive and its API answers within ``timeout``."""
        record = self.running_record()
        if record is None:
            return False
        async with self.client() as client:
            return await client.wait_ready(
                timeout,
                interval=READY_POLL_INTERVAL,
                alive=lambda: self._runtime.identities.is_alive_record(record),
            )

    async def path_ready(self, identity: str) -> bool:
        async with self.client() as client:
            return await client.path_ready(identity)
