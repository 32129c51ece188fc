"""Process-wide runtime context.

Everything a component needs beyond its own arguments (configuration,
stores, lock manager, identity tracker, logger and cached command lookups)
lives on one :class:`Runtime` built once at process start and passed
explicitly. Nothing in streamwarden keeps module-level mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from streamwarden.coordination import (
    ClaimAllocator,
    FileStateStore,
    IdentityTracker,
    LockManager,
    Markers,
)
from streamwarden.utils import (
    command_exists,
    create_system_logger,
    get_fallback_dir,
    get_run_dir,
    get_state_dir,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from streamwarden.config import Config


@dataclass(slots=True)
class Runtime:
    """Explicit context shared by the components of one process.

    Attributes:
        config: Effective configuration.
        logger: System logger bound to this process's component.
        run_store: Store for PID files, locks, claims and markers.
        state_store: Store for watchdog state, histories and snapshots.
        identities: Process identity tracker over ``run_store``.
        locks: Lock manager over ``run_store``.
        claims: Claim allocator.
        markers: Restart and cleanup markers.
        proc_root: Mount point of procfs.
        dev_root: Root under which ``snd`` device nodes are looked up.
    """

    config: Config
    logger: FilteringBoundLogger
    run_store: FileStateStore
    state_store: FileStateStore
    identities: IdentityTracker
    locks: LockManager
    claims: ClaimAllocator
    markers: Markers
    proc_root: Path = Path("/proc")
    dev_root: Path = Path("/dev")
    _commands: dict[str, bool] = field(default_factory=dict)

    def has_command(self, name: str) -> bool:
        """Return whether ``name`` is on PATH, caching the lookup."""
        cached = self._commands.get(name)
        if cached is None:
            cached = command_exists(name)
            self._commands[name] = cached
        return cached


def create_runtime(
    config: Config,
    *,
    component: str,
    logger: FilteringBoundLogger | None = None,
    proc_root: Path = Path("/proc"),
    dev_root: Path = Path("/dev"),
) -> Runtime:
    """Build the runtime context for one process.

    Args:
        config: Effective configuration.
        component: Name bound to every system log entry.
        logger: Logger to use instead of the system log (tests, CLI).
        proc_root: Mount point of procfs.
        dev_root: Root of device nodes.

    Returns:
        A ready-to-use Runtime.
    """
    log = (
        logger
        if logger is not None
        else create_system_logger(config, component=component)
    )
    fallback = get_fallback_dir(config.paths)

    run_store = FileStateStore(
        get_run_dir(config.paths),
        fallback_root=fallback / "run",
        proc_root=proc_root,
        logger=log,
    )
    state_store = FileStateStore(
        get_state_dir(config.paths),
        fallback_root=fallback / "state",
        proc_root=proc_root,
        logger=log,
    )
    identities = IdentityTracker(run_store, proc_root)
    locks = LockManager(
        run_store,
        identities,
        stale_threshold=config.locks.stale_threshold,
        poll_interval=config.locks.poll_interval,
        logger=log,
    )
    claims = ClaimAllocator(
        run_store,
        locks,
        identities,
        max_attempts=config.supervisor.max_claim_attempts,
        lock_timeout=config.locks.claim_timeout,
        logger=log,
    )
    markers = Markers(
        run_store,
        restart_key=config.paths.restart_marker,
        cleanup_key=config.paths.cleanup_marker,
    )
    return Runtime(
        config=config,
        logger=log,
        run_store=run_store,
        state_store=state_store,
        identities=identities,
        locks=locks,
        claims=claims,
        markers=markers,
        proc_root=proc_root,
        dev_root=dev_root,
    )
