# pyright: reportUnusedFunction=false
"""Diagnostic snapshot of the coordination state."""

from __future__ import annotations

from dataclasses import fields
from typing import TYPE_CHECKING, Annotated, Any

from cyclopts import App, Parameter

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import command_errors, format_json
from streamwarden.coordination import (
    ENCODER_PIDS_DIR,
    PID_SUFFIX,
    SUPERVISOR_PIDS_DIR,
    ProcessRole,
    identity_from_key,
)
from streamwarden.utils import get_system_log_file, tail_file
from streamwarden.watchdog import RecoveryState, recovery_key

if TYPE_CHECKING:
    from pathlib import Path

    from streamwarden.orchestrator import Orchestrator
    from streamwarden.runtime import Runtime

debug_app = App(name="debug", help="Print a diagnostic snapshot as JSON.")

LOG_TAIL_LINES = 20


def coordination_files(root: Path) -> list[str]:
    """Return every file under ``root`` relative to it."""
    if not root.is_dir():
        return []
    return sorted(
        str(path.relative_to(root)) for path in root.rglob("*") if path.is_file()
    )


def process_records(runtime: Runtime) -> list[dict[str, Any]]:
    roles = {
        SUPERVISOR_PIDS_DIR: ProcessRole.SUPERVISOR,
        ENCODER_PIDS_DIR: ProcessRole.ENCODER,
    }
    records: list[dict[str, Any]] = []
    for directory, role in roles.items():
        for key in runtime.run_store.list_keys(directory, suffix=PID_SUFFIX):
            identity = identity_from_key(key)
            record = runtime.identities.load(key, role=role, identity=identity)
            records.append(
                {
                    "key": key,
                    "role": role.value,
                    "identity": identity,
                    "pid": record.pid if record is not None else None,
                    "alive": runtime.identities.is_alive_record(record),
                }
            )
    return records


def recovery_values(runtime: Runtime) -> dict[str, int | None]:
    """Read the persisted escalation state without repairing it."""
    return {
        item.name: runtime.state_store.read_int(recovery_key(item.name))
        for item in fields(RecoveryState)
    }


def debug_snapshot(
    runtime: Runtime, orchestrator: Orchestrator, *, log_lines: int = LOG_TAIL_LINES
) -> dict[str, Any]:
    """Collect coordination files, claims, records and matching processes."""
    config = runtime.config
    relay_record = orchestrator.relay.record()
    return {
        "run_dir": str(runtime.run_store.root),
        "state_dir": str(runtime.state_store.root),
        "coordination_files": coordination_files(runtime.run_store.root),
        "system_lock_holder": runtime.locks.probe(config.paths.system_lock),
        "restart_marker_age": runtime.markers.restart_age(),
        "cleanup_in_progress": runtime.markers.cleanup_in_progress(),
        "relay": {
            "pid": relay_record.pid if relay_record is not None else None,
            "alive": runtime.identities.is_alive_record(relay_record),
            "strays": [p.pid for p in orchestrator.relay.stray_processes()],
        },
        "records": process_records(runtime),
        "claims": runtime.claims.statuses(),
        "encoder_processes": orchestrator.encoder_processes(),
        "recovery": recovery_values(runtime),
        "log_tail": tail_file(get_system_log_file(config), log_lines).splitlines(),
    }


@debug_app.default
def debug(
    *,
    log_lines: Annotated[
        int, Parameter(help="Lines of the system log to include.")
    ] = LOG_TAIL_LINES,
) -> None:
    """Print coordination files, claims, PID records and live processes."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        runtime = ctx.runtime("cli")
        snapshot = debug_snapshot(
            runtime, ctx.orchestrator(runtime), log_lines=log_lines
        )
    print(format_json(snapshot))  # noqa: T201
