"""System-wide start, stop, restart and status.

The orchestrator is the only component that sees every device at once. It
holds the system lock while it changes the set of running processes, and it
never supervises encoders itself: it launches one supervisor process per
device and then only observes them through the coordination files.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, final

import anyio
import anyio.to_thread

from streamwarden.coordination import (
    CLAIMS_DIR,
    ENCODER_PIDS_DIR,
    PID_SUFFIX,
    RELAY_PID_KEY,
    SUPERVISOR_PIDS_DIR,
    ProcessRole,
    encoder_pid_key,
    holder_key,
    identity_from_key,
    lock_key,
    start_key,
    supervisor_pid_key,
)
from streamwarden.devices import DeviceCatalog
from streamwarden.exceptions import (
    DependencyMissingError,
    LockTimeoutError,
    NoDevicesError,
    StreamStartError,
    StreamValidationError,
)
from streamwarden.relay import RelayServer
from streamwarden.supervisor import (
    ProcessTerminator,
    TerminationResult,
    stream_spec_for,
)
from streamwarden.utils import process_usage, terminate_processes

from ._launcher import ProcessLauncher
from ._models import (
    RelayStatus,
    StartReport,
    StopReport,
    StreamOutcome,
    StreamStatus,
    SystemStatus,
)
from ._sweep import CleanupSweep

if TYPE_CHECKING:
    from collections.abc import Sequence

    from streamwarden.coordination import ClaimStatus, ProcessRecord
    from streamwarden.devices import DeviceInfo
    from streamwarden.runtime import Runtime

    from ._launcher import SupervisorLauncher
    from ._models import SweepReport

STABLE_READINGS: int = 2
JOIN_POLL_INTERVAL: float = 0.2
CLEANUP_POLL_INTERVAL: float = 0.5


@final
class Orchestrator:
    """Brings the whole system up and down."""

    __slots__ = (
        "_devices",
        "_launcher",
        "_relay",
        "_runtime",
        "_sweep",
        "_terminator",
    )

    def __init__(
        self,
        runtime: Runtime,
        *,
        devices: DeviceCatalog | None = None,
        relay: RelayServer | None = None,
        launcher: SupervisorLauncher | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            runtime: Process runtime context.
            devices: Device catalog. Defaults to one over the runtime's roots.
            relay: Relay server controller.
            launcher: Starts supervisor processes. Defaults to spawning
                ``streamwarden supervise`` with the current interpreter.
        """
        self._runtime = runtime
        self._devices = devices or DeviceCatalog(
            dev_root=runtime.dev_root,
            proc_root=runtime.proc_root,
            logger=runtime.logger,
        )
        self._relay = relay or RelayServer(runtime)
        self._launcher = launcher or ProcessLauncher()
        self._sweep = CleanupSweep(runtime, self._relay)
        self._terminator = ProcessTerminator(runtime.identities, logger=runtime.logger)

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def relay(self) -> RelayServer:
        return self._relay

    @property
    def devices(self) -> DeviceCatalog:
        return self._devices

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    def check_dependencies(self) -> None:
        """Raise DependencyMissingError unless the relay and encoder are installed."""
        config = self._runtime.config
        for command in (config.relay.binary, config.encoder.binary):
            if not self._runtime.has_command(command):
                msg = f"Required program '{command}' not found on PATH"
                raise DependencyMissingError(msg, command=command)

    async def start(self, *, parallel: bool | None = None) -> StartReport:
        """Start the relay server and one supervised stream per device.

        Args:
            parallel: Launch all supervisors at once. Defaults to
                ``startup.parallel``.

        Returns:
            How many of the detected devices ended up with a ready stream.

        Raises:
            DependencyMissingError: If the relay or encoder is not installed.
            LockTimeoutError: If another orchestrator holds the system lock.
            NoDevicesError: If no capture device appeared.
            PortConflictError: If a relay port is already bound.
            RelayStartError: If the relay server did not come up.
            StreamStartError: In fail-fast mode, on the first failed device.
            StreamValidationError: If no stream became ready.
        """
        runtime = self._runtime
        config = runtime.config
        self.check_dependencies()
        handle = await anyio.to_thread.run_sync(
            runtime.locks.acquire,
            config.paths.system_lock,
            config.locks.acquisition_timeout,
        )
        try:
            return await self._start_locked(
                config.startup.parallel if parallel is None else parallel
            )
        finally:
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(runtime.locks.release, handle)

    async def _start_locked(self, parallel: bool) -> StartReport:
        runtime = self._runtime
        startup = runtime.config.startup

        restart = await anyio.to_thread.run_sync(self.is_restart_scenario)
        runtime.logger.info(
            "start_requested", restart_scenario=restart, parallel=parallel
        )
        sweep = await self.sweep(enhanced=restart)

        window = (
            startup.restart_stabilization_delay
            if restart
            else startup.usb_stabilization_delay
        )
        devices = await self.wait_for_devices(window)

        record = await self._relay.start()
        try:
            outcomes = await self.launch_streams(devices, parallel=parallel)
        except BaseException:
            with anyio.CancelScope(shield=True):
                _ = await anyio.to_thread.run_sync(self._stop_all)
            raise

        report = StartReport(
            devices_detected=len(devices),
            streams=tuple(outcomes),
            restart_scenario=restart,
            relay_pid=record.pid,
            sweep=sweep,
        )
        if report.validated == 0:
            runtime.logger.error("start_failed_no_streams", devices=len(devices))
            _ = await anyio.to_thread.run_sync(self._stop_all)
            msg = f"No stream became ready (0/{len(devices)} devices)"
            raise StreamValidationError(
                msg,
                identities=tuple(o.identity for o in outcomes if o.identity),
            )
        unready = next((o for o in outcomes if not o.validated), None)
        if unready is not None and runtime.config.errors.fail_fast:
            _ = await anyio.to_thread.run_sync(self._stop_all)
            msg = f"Stream for device '{unready.device}' failed: {unready.error}"
            raise StreamStartError(msg, device=unready.device)

        runtime.logger.info(
            "start_finished",
            streams=report.validated,
            devices=report.devices_detected,
            relay_pid=record.pid,
        )
        return report

    def is_restart_scenario(self) -> bool:
        """Return whether this start follows a recent stop or crash.

        True if a fresh restart marker exists, or the relay server or any
        encoder of ours is still observably alive.
        """
        runtime = self._runtime
        if runtime.markers.recent_restart(
            runtime.config.startup.restart_marker_validity
        ):
            return True
        if self._relay.is_running() or self._relay.stray_processes():
            return True
        for key in runtime.run_store.list_keys(ENCODER_PIDS_DIR, suffix=PID_SUFFIX):
            record = runtime.identities.load(key, role=ProcessRole.ENCODER)
            if runtime.identities.is_alive_record(record):
                return True
        return bool(self._sweep.encoder_processes())

    async def sweep(self, *, enhanced: bool) -> SweepReport:
        """Run a cleanup sweep off the event loop."""
        return await anyio.to_thread.run_sync(
            functools.partial(self._sweep.run, enhanced=enhanced)
        )

    async def wait_for_devices(self, window: float) -> list[DeviceInfo]:
        """Wait until the device count is stable, or ``window`` elapses.

        Two consecutive equal non-zero readings count as stable.

        Raises:
            NoDevicesError: If no device is present when the window elapses.
        """
        runtime = self._runtime
        interval = runtime.config.startup.stabilization_poll_interval
        readings: list[int] = []
        with anyio.move_on_after(window):
            while True:
                devices = await anyio.to_thread.run_sync(self._devices.detect)
                readings.append(len(devices))
                recent = readings[-STABLE_READINGS:]
                if (
                    len(recent) == STABLE_READINGS
                    and recent[0] > 0
                    and len(set(recent)) == 1
                ):
                    runtime.logger.info("devices_stable", count=len(devices))
                    return devices
                await anyio.sleep(interval)

        devices = await anyio.to_thread.run_sync(self._devices.detect)
        if not devices:
            msg = f"No USB capture devices found after waiting {window:.0f}s"
            raise NoDevicesError(msg)
        runtime.logger.warning(
            "devices_not_stable", count=len(devices), window=window, readings=readings
        )
        return devices

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    async def start_streams(self) -> list[StreamOutcome]:
        """Launch and validate supervisors for every attached device."""
        devices = await anyio.to_thread.run_sync(self._devices.detect)
        return await self.launch_streams(
            devices, parallel=self._runtime.config.startup.parallel
        )

    async def launch_streams(
        self, devices: Sequence[DeviceInfo], *, parallel: bool
    ) -> list[StreamOutcome]:
        """Launch one supervisor per device, join them, then validate.

        Raises:
            StreamStartError: In fail-fast mode, on the first failed device.
        """
        startup = self._runtime.config.startup
        outcomes: dict[str, StreamOutcome] = {}
        launchable: list[DeviceInfo] = []
        for device in devices:
            if startup.device_test and not await self._capture_test(device):
                outcomes[device.name] = self._checked(
                    StreamOutcome(device=device.name, error="capture test failed")
                )
                continue
            launchable.append(device)

        if parallel:
            async with anyio.create_task_group() as tg:
                for device in launchable:
                    tg.start_soon(self._launch_into, device, outcomes)
            for device in launchable:
                _ = self._checked(outcomes[device.name])
        else:
            for device in launchable:
                outcomes[device.name] = self._checked(await self._launch(device))

        joined = [o for o in outcomes.values() if o.identity is not None]
        if joined:
            await anyio.sleep(startup.stream_startup_delay)
            async with anyio.create_task_group() as tg:
                for outcome in joined:
                    tg.start_soon(self._validate_into, outcome, outcomes)

        return [outcomes[device.name] for device in devices]

    def _checked(self, outcome: StreamOutcome) -> StreamOutcome:
        """Log a per-device failure; in fail-fast mode, raise it."""
        if outcome.error is None:
            return outcome
        runtime = self._runtime
        runtime.logger.warning(
            "stream_start_failed", device=outcome.device, error=outcome.error
        )
        if runtime.config.errors.fail_fast:
            msg = f"Stream for device '{outcome.device}' failed: {outcome.error}"
            raise StreamStartError(msg, device=outcome.device)
        return outcome

    async def _capture_test(self, device: DeviceInfo) -> bool:
        startup = self._runtime.config.startup
        settings = stream_spec_for(device, self._runtime.config).settings
        return await anyio.to_thread.run_sync(
            functools.partial(
                self._devices.capture_test,
                device,
                timeout=startup.device_test_timeout,
                sample_rate=settings.sample_rate,
                channels=settings.channels,
            )
        )

    async def _launch_into(
        self, device: DeviceInfo, outcomes: dict[str, StreamOutcome]
    ) -> None:
        outcomes[device.name] = await self._launch(device)

    async def _launch(self, device: DeviceInfo) -> StreamOutcome:
        pid = self._launcher.launch(device)
        if pid is None:
            return StreamOutcome(device=device.name, error="supervisor did not start")
        self._runtime.logger.info(
            "supervisor_launched", device=device.name, supervisor_pid=pid
        )
        identity = await self._join(device, pid)
        if identity is None:
            return StreamOutcome(
                device=device.name,
                supervisor_pid=pid,
                error="supervisor did not claim a stream identity",
            )
        return StreamOutcome(device=device.name, identity=identity, supervisor_pid=pid)

    async def _join(self, device: DeviceInfo, pid: int) -> str | None:
        """Wait (bounded) until the supervisor holds a claim for ``device``."""
        timeout = self._runtime.config.startup.supervisor_join_timeout
        with anyio.move_on_after(timeout):
            while True:
                alive = self._launcher.is_alive(pid)
                identity = await anyio.to_thread.run_sync(
                    self.claimed_identity, device.device_ref
                )
                if identity is not None or not alive:
                    return identity
                await anyio.sleep(JOIN_POLL_INTERVAL)
        return None

    def claimed_identity(self, device_ref: str) -> str | None:
        """Return the identity a live claim holds for ``device_ref``."""
        for status in self._runtime.claims.statuses():
            if status.held and status.device_ref == device_ref:
                return status.identity
        return None

    async def _validate_into(
        self, outcome: StreamOutcome, outcomes: dict[str, StreamOutcome]
    ) -> None:
        if outcome.identity is None:
            return
        ready = await self.validate_stream(outcome.identity)
        outcomes[outcome.device] = StreamOutcome(
            device=outcome.device,
            identity=outcome.identity,
            supervisor_pid=outcome.supervisor_pid,
            validated=ready,
            error=None if ready else "stream not ready on relay server",
        )

    async def validate_stream(self, identity: str) -> bool:
        """Poll the relay server a bounded number of times for ``identity``."""
        startup = self._runtime.config.startup
        for attempt in range(1, startup.validation_attempts + 1):
            await anyio.sleep(startup.validation_delay)
            if await self._relay.path_ready(identity):
                self._runtime.logger.info(
                    "stream_validated", identity=identity, attempt=attempt
                )
                return True
        self._runtime.logger.warning(
            "stream_validation_failed",
            identity=identity,
            attempts=startup.validation_attempts,
        )
        return False

    # -------------------------------------------------------------------------
    # Stop
    # -------------------------------------------------------------------------

    def stop(self) -> StopReport:
        """Terminate supervisors, encoders and the relay server.

        The system lock is waited for briefly; when another process holds it
        the stop proceeds anyway with a warning.
        """
        runtime = self._runtime
        paths = runtime.config.paths
        try:
            handle = runtime.locks.acquire(
                paths.system_lock, runtime.config.locks.stop_timeout
            )
        except LockTimeoutError as e:
            runtime.logger.warning("stop_lock_busy", holder_pid=e.holder_pid)
            handle = None

        try:
            report = self._stop_all(locked=handle is not None)
        finally:
            if handle is not None:
                runtime.locks.release(handle)
        runtime.logger.info(
            "stop_finished",
            supervisors=report.supervisors,
            encoders=report.encoders,
            orphans=len(report.orphans),
            relay=report.relay.value,
        )
        return report

    def _stop_all(self, *, locked: bool = True) -> StopReport:
        sweep = self._sweep
        with self._runtime.markers.cleanup_sweep():
            supervisors = sweep.terminate_records(
                SUPERVISOR_PIDS_DIR, ProcessRole.SUPERVISOR
            )
            encoders = sweep.terminate_records(ENCODER_PIDS_DIR, ProcessRole.ENCODER)
            orphans = sweep.kill_orphan_encoders()
            relay = self._relay.stop()
            _ = sweep.remove_stale_files()
        return StopReport(
            locked=locked,
            supervisors=supervisors,
            encoders=encoders,
            orphans=tuple(orphans),
            relay=relay,
        )

    def force_stop(self) -> StopReport:
        """Kill everything without waiting and delete all coordination files.

        The system lock is ignored.
        """
        runtime = self._runtime
        store = runtime.run_store
        killed = {SUPERVISOR_PIDS_DIR: 0, ENCODER_PIDS_DIR: 0}
        roles = {
            SUPERVISOR_PIDS_DIR: ProcessRole.SUPERVISOR,
            ENCODER_PIDS_DIR: ProcessRole.ENCODER,
        }
        for directory, role in roles.items():
            for key in store.list_keys(directory, suffix=PID_SUFFIX):
                record = runtime.identities.load(key, role=role)
                if record is not None and self._kill(record):
                    killed[directory] += 1

        relay = TerminationResult.ALREADY_GONE
        record = self._relay.record()
        if record is not None and self._kill(record):
            relay = TerminationResult.TERMINATED

        strays = [
            *self._sweep.encoder_processes(),
            *(proc.pid for proc in self._relay.stray_processes()),
        ]
        if strays:
            _ = terminate_processes(strays, 0.0)

        paths = runtime.config.paths
        keys: list[str] = [RELAY_PID_KEY, start_key(RELAY_PID_KEY)]
        for directory in (SUPERVISOR_PIDS_DIR, ENCODER_PIDS_DIR, CLAIMS_DIR):
            keys.extend(store.list_keys(directory))
        for name in (paths.system_lock, paths.config_lock):
            holder = holder_key(name)
            keys.extend([lock_key(name), holder, start_key(holder)])
        store.delete_many(keys)
        runtime.markers.clear_restart()
        runtime.markers.end_cleanup()

        runtime.logger.warning(
            "force_stop_finished",
            supervisors=killed[SUPERVISOR_PIDS_DIR],
            encoders=killed[ENCODER_PIDS_DIR],
            strays=strays,
        )
        return StopReport(
            locked=False,
            supervisors=killed[SUPERVISOR_PIDS_DIR],
            encoders=killed[ENCODER_PIDS_DIR],
            orphans=tuple(strays),
            relay=relay,
        )

    def _kill(self, record: ProcessRecord) -> bool:
        return self._terminator.force_stop(record) is not TerminationResult.ALREADY_GONE

    async def restart(self, *, parallel: bool | None = None) -> StartReport:
        """Stop everything, wait for the cleanup to finish, and start again."""
        runtime = self._runtime
        startup = runtime.config.startup
        runtime.markers.mark_restart()
        _ = await anyio.to_thread.run_sync(self.stop)

        with anyio.move_on_after(startup.cleanup_wait_timeout) as scope:
            while runtime.markers.cleanup_in_progress():
                await anyio.sleep(CLEANUP_POLL_INTERVAL)
        if scope.cancelled_caught:
            runtime.logger.warning(
                "cleanup_wait_timeout", timeout=startup.cleanup_wait_timeout
            )

        await anyio.sleep(startup.restart_pause)
        return await self.start(parallel=parallel)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def status(self, *, query_api: bool = True) -> SystemStatus:
        """Re-derive the current state from live processes and locks.

        Args:
            query_api: Also ask the relay server's control API. Its answers
                are advisory and never change whether a process counts as
                alive.
        """
        runtime = self._runtime
        relay_record = self._relay.record()
        running = runtime.identities.is_alive_record(relay_record)
        api_reachable: bool | None = None
        if query_api and running:
            async with self._relay.client() as client:
                api_reachable = await client.ready()

        usage = None
        if running and relay_record is not None:
            usage = await anyio.to_thread.run_sync(process_usage, relay_record.pid)
        strays = await anyio.to_thread.run_sync(self._relay.stray_processes)
        relay = RelayStatus(
            pid=relay_record.pid if relay_record is not None else None,
            running=running,
            usage=usage,
            api_reachable=api_reachable,
            strays=tuple(proc.pid for proc in strays),
        )

        claims = {s.identity: s for s in runtime.claims.statuses()}
        streams = [
            await self._stream_status(
                identity, claims.get(identity), query_api=bool(api_reachable)
            )
            for identity in self._known_identities(claims)
        ]
        devices = await anyio.to_thread.run_sync(self._devices.count)
        orphans = [
            pid
            for pid in await anyio.to_thread.run_sync(self._sweep.encoder_processes)
            if not any(s.encoder_pid == pid and s.encoder_alive for s in streams)
        ]
        return SystemStatus(
            relay=relay,
            streams=tuple(streams),
            devices=devices,
            lock_holder=runtime.locks.probe(runtime.config.paths.system_lock),
            cleanup_in_progress=runtime.markers.cleanup_in_progress(),
            restart_marker_age=runtime.markers.restart_age(),
            orphan_encoders=tuple(orphans),
        )

    def _known_identities(self, claims: dict[str, ClaimStatus]) -> list[str]:
        store = self._runtime.run_store
        identities = set(claims)
        for directory in (SUPERVISOR_PIDS_DIR, ENCODER_PIDS_DIR):
            identities.update(
                identity_from_key(key)
                for key in store.list_keys(directory, suffix=PID_SUFFIX)
            )
        return sorted(identities)

    async def _stream_status(
        self, identity: str, claim: ClaimStatus | None, *, query_api: bool
    ) -> StreamStatus:
        runtime = self._runtime
        tracker = runtime.identities
        supervisor = tracker.load(
            supervisor_pid_key(identity), role=ProcessRole.SUPERVISOR, identity=identity
        )
        encoder = tracker.load(
            encoder_pid_key(identity), role=ProcessRole.ENCODER, identity=identity
        )
        encoder_alive = tracker.is_alive_record(encoder)
        ready = await self._relay.path_ready(identity) if query_api else None
        return StreamStatus(
            identity=identity,
            device_ref=claim.device_ref if claim is not None else None,
            claim_holder=claim.holder_pid if claim is not None else None,
            supervisor_pid=supervisor.pid if supervisor is not None else None,
            supervisor_alive=tracker.is_alive_record(supervisor),
            encoder_pid=encoder.pid if encoder is not None else None,
            encoder_alive=encoder_alive,
            ready=ready,
            url=runtime.config.relay.stream_url(identity),
        )

    # -------------------------------------------------------------------------
    # Recovery primitives
    # -------------------------------------------------------------------------

    def stop_relay(self, grace: float | None = None) -> TerminationResult:
        return self._relay.stop(grace)

    async def start_relay(self) -> ProcessRecord:
        return await self._relay.start()

    def stop_encoders(self) -> int:
        """Stop every supervisor and encoder, keeping the relay server.

        Returns:
            Number of processes terminated.
        """
        sweep = self._sweep
        with self._runtime.markers.cleanup_sweep():
            stopped = sweep.terminate_records(
                SUPERVISOR_PIDS_DIR, ProcessRole.SUPERVISOR
            )
            stopped += sweep.terminate_records(ENCODER_PIDS_DIR, ProcessRole.ENCODER)
            stopped += len(sweep.kill_orphan_encoders())
        return stopped

    def cleanup_relay_holders(self, *, force: bool = False) -> list[int]:
        """Terminate every process executing the relay binary, zombies included.

        Args:
            force: Kill immediately instead of allowing a grace period.

        Returns:
            PIDs that were signalled.
        """
        runtime = self._runtime
        holders = self._relay.holders()
        pids = [proc.pid for proc in holders]
        if not pids:
            return []
        grace = 0.0 if force else runtime.config.watchdog.grace_period
        survivors = terminate_processes(pids, grace)
        runtime.logger.warning(
            "relay_holders_terminated",
            pids=pids,
            zombies=[proc.pid for proc in holders if proc.zombie],
            survivors=survivors,
            force=force,
        )
        return pids

    def relay_pid(self) -> int | None:
        record = self._relay.running_record()
        return record.pid if record is not None else None

    def encoder_processes(self) -> list[int]:
        return self._sweep.encoder_processes()

    def remove_stale_files(self) -> int:
        return self._sweep.remove_stale_files()

    async def relay_healthy(self, timeout: float) -> bool:
        return await self._relay.healthy(timeout)
