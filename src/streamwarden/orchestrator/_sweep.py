"""Cleanup sweep: terminate known processes and remove stale coordination files.

The sweep runs while the cleanup marker exists, so supervisors that are
still alive stop instead of restarting their encoders.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, final

from streamwarden.coordination import (
    CLAIMS_DIR,
    DEVICE_SUFFIX,
    ENCODER_PIDS_DIR,
    LOCK_SUFFIX,
    PID_SUFFIX,
    START_SUFFIX,
    SUPERVISOR_PIDS_DIR,
    ProcessRole,
    claim_device_key,
    claim_lock_name,
    identity_from_key,
)
from streamwarden.supervisor import (
    ProcessTerminator,
    TerminationResult,
    encoder_url_prefix,
)
from streamwarden.utils import (
    find_processes,
    is_encoder_cmdline,
    spawn_detached,
    terminate_processes,
)

from ._models import SweepReport

if TYPE_CHECKING:
    from streamwarden.relay import RelayServer
    from streamwarden.runtime import Runtime

TEMP_FILE_MAX_AGE: float = 60.0


@final
class CleanupSweep:
    """Brings the coordination state back to a clean slate."""

    __slots__ = ("_relay", "_runtime", "_terminator")

    def __init__(self, runtime: Runtime, relay: RelayServer) -> None:
        self._runtime = runtime
        self._relay = relay
        self._terminator = ProcessTerminator(runtime.identities, logger=runtime.logger)

    @property
    def _grace(self) -> float:
        return self._runtime.config.supervisor.termination_timeout

    def run(self, *, enhanced: bool) -> SweepReport:
        """Run one sweep under the cleanup marker.

        Args:
            enhanced: Also stop a live relay server and any relay processes
                running our configuration (restart scenario).

        Returns:
            What was terminated and removed.
        """
        runtime = self._runtime
        with runtime.markers.cleanup_sweep():
            supervisors = self.terminate_records(
                SUPERVISOR_PIDS_DIR, ProcessRole.SUPERVISOR
            )
            encoders = self.terminate_records(ENCODER_PIDS_DIR, ProcessRole.ENCODER)
            orphans = self.kill_orphan_encoders()

            relay_stopped = False
            relay_record_removed = False
            record = self._relay.record()
            if record is not None and not runtime.identities.is_alive_record(record):
                runtime.identities.forget(record.key)
                relay_record_removed = True
            if enhanced:
                relay_stopped = self._relay.stop() is TerminationResult.TERMINATED
                _ = self._relay.kill_strays(self._grace)

            files_removed = self.remove_stale_files()
            runtime.markers.clear_restart()
            self._reset_audio()

        report = SweepReport(
            enhanced=enhanced,
            supervisors=supervisors,
            encoders=encoders,
            orphans=tuple(orphans),
            relay_stopped=relay_stopped,
            relay_record_removed=relay_record_removed,
            files_removed=files_removed,
        )
        runtime.logger.info(
            "cleanup_sweep_finished",
            enhanced=enhanced,
            supervisors=supervisors,
            encoders=encoders,
            orphans=len(report.orphans),
            relay_stopped=relay_stopped,
            files_removed=files_removed,
        )
        return report

    def terminate_records(self, directory: str, role: ProcessRole) -> int:
        """Terminate every live process recorded under ``directory``.

        Every record is forgotten afterwards, live or not.

        Returns:
            Number of processes that were alive and got terminated.
        """
        identities = self._runtime.identities
        stopped = 0
        for key in self._runtime.run_store.list_keys(directory, suffix=PID_SUFFIX):
            record = identities.load(key, role=role, identity=identity_from_key(key))
            if record is None:
                continue
            result = self._terminator.terminate(record, self._grace)
            if result is TerminationResult.TERMINATED:
                stopped += 1
            _ = identities.forget_if_current(record)
        return stopped

    def encoder_processes(self) -> list[int]:
        """Return PIDs of every encoder publishing to our relay server."""
        config = self._runtime.config
        binary = config.encoder.binary
        prefix = encoder_url_prefix(config.relay.host, config.relay.rtsp_port)
        return [
            proc.pid
            for proc in find_processes(
                lambda argv: is_encoder_cmdline(argv, binary, prefix)
            )
        ]

    def kill_orphan_encoders(self) -> list[int]:
        """Kill encoders that no record accounts for.

        Returns:
            PIDs that were signalled.
        """
        pids = self.encoder_processes()
        if pids:
            survivors = terminate_processes(pids, self._grace)
            self._runtime.logger.warning(
                "orphan_encoders_terminated", pids=pids, survivors=survivors
            )
        return pids

    def remove_stale_files(self) -> int:
        """Delete coordination files whose owner is gone.

        The system lock is left alone; the caller normally holds it.

        Returns:
            Number of files deleted.
        """
        store = self._runtime.run_store
        locks = self._runtime.locks
        stale: list[str] = []
        removed = 0

        for directory in (SUPERVISOR_PIDS_DIR, ENCODER_PIDS_DIR):
            for key in store.list_keys(directory, suffix=START_SUFFIX):
                if not store.exists(key.removesuffix(START_SUFFIX)):
                    stale.append(key)

        claimed: set[str] = set()
        for key in store.list_keys(CLAIMS_DIR, suffix=LOCK_SUFFIX):
            identity = identity_from_key(key)
            name = claim_lock_name(identity)
            if not locks.remove_if_unheld(name):
                claimed.add(identity)
                continue
            removed += 1
            stale.append(claim_device_key(identity))
        for key in store.list_keys(CLAIMS_DIR, suffix=DEVICE_SUFFIX):
            if key.removesuffix(DEVICE_SUFFIX).rsplit("/", 1)[-1] not in claimed:
                stale.append(key)

        if locks.remove_if_unheld(self._runtime.config.paths.config_lock):
            removed += 1

        for key in dict.fromkeys(stale):
            if store.exists(key):
                store.delete(key)
                removed += 1
        return removed + self._remove_temp_files()

    def _remove_temp_files(self) -> int:
        root = self._runtime.run_store.root
        now = time.time()
        removed = 0
        for path in root.rglob(".*.tmp"):
            try:
                if now - path.stat().st_mtime > TEMP_FILE_MAX_AGE:
                    path.unlink()
                    removed += 1
            except OSError:
                continue
        return removed

    def _reset_audio(self) -> None:
        if not self._runtime.has_command("alsactl"):
            return
        if spawn_detached(("alsactl", "restore")) is None:
            self._runtime.logger.debug("audio_reset_failed")
