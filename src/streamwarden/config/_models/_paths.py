"""Filesystem layout configuration model."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class PathsConfig(BaseModel):
    """Where coordination files, persisted state and logs live.

    Directory fields left empty are derived from the platform at runtime.
    Marker and lock names are keys relative to ``run_dir`` unless absolute.

    Attributes:
        run_dir: Directory for PID files, locks, claims and markers.
        state_dir: Directory for watchdog state and recovery snapshots.
        log_dir: Directory for system, recovery, relay and stream logs.
        fallback_dir: Used when ``run_dir`` or ``state_dir`` cannot be created.
        restart_marker: Key of the restart-scenario marker.
        cleanup_marker: Key of the cleanup-in-progress marker.
        system_lock: Name of the orchestrator-wide lock.
        config_lock: Name of the lock guarding the relay configuration file.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    run_dir: str = ""
    state_dir: str = ""
    log_dir: str = ""
    fallback_dir: str = ""
    restart_marker: str = "restart.marker"
    cleanup_marker: str = "cleanup.marker"
    system_lock: str = "orchestrator"
    config_lock: str = "relay-config"
