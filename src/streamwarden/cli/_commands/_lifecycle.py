# pyright: reportUnusedFunction=false
"""Start, stop, restart and status commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import anyio
from cyclopts import App, Parameter
from rich.table import Table

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import command_errors, format_json

if TYPE_CHECKING:
    from rich.console import Console

    from streamwarden.config import Config
    from streamwarden.orchestrator import StartReport, StopReport, SystemStatus

start_app = App(name="start", help="Start the relay server and all streams.")
stop_app = App(name="stop", help="Stop all streams and the relay server.")
restart_app = App(name="restart", help="Stop everything, then start again.")
status_app = App(name="status", help="Show the relay server and stream state.")


def print_start_report(console: Console, report: StartReport, config: Config) -> None:
    kind = "restart" if report.restart_scenario else "start"
    console.print(f"Relay server running (PID {report.relay_pid}, {kind})")
    for stream in report.streams:
        if stream.validated and stream.identity is not None:
            url = config.relay.stream_url(stream.identity)
            console.print(f"  [green]ok[/green]     {stream.device} -> {url}")
        else:
            reason = stream.error or "not ready"
            console.print(f"  [red]failed[/red] {stream.device}: {reason}")
    console.print(report.summary)


def print_stop_report(console: Console, report: StopReport) -> None:
    if not report.locked:
        console.print("[yellow]System lock busy; stopped without it[/yellow]")
    console.print(
        f"Stopped {report.supervisors} supervisors, {report.encoders} encoders, "
        f"{len(report.orphans)} orphans; relay server {report.relay.value}"
    )


def status_table(status: SystemStatus) -> Table:
    table = Table(title="Streams")
    table.add_column("Identity")
    table.add_column("State")
    table.add_column("Supervisor")
    table.add_column("Encoder")
    table.add_column("Ready")
    table.add_column("URL")
    for stream in status.streams:
        ready = "-" if stream.ready is None else ("yes" if stream.ready else "no")
        table.add_row(
            stream.identity,
            stream.state,
            str(stream.supervisor_pid or "-"),
            str(stream.encoder_pid or "-"),
            ready,
            stream.url,
        )
    return table


def print_status(console: Console, status: SystemStatus) -> None:
    relay = status.relay
    if relay.running and relay.usage is not None:
        console.print(
            f"Relay server: running (PID {relay.pid}, "
            f"CPU {relay.usage.cpu_percent:.0f}%, "
            f"memory {relay.usage.memory_percent:.1f}%, "
            f"{relay.usage.fds} fds)"
        )
    elif relay.running:
        console.print(f"Relay server: running (PID {relay.pid})")
    else:
        console.print("Relay server: [red]stopped[/red]")
    if relay.api_reachable is False:
        console.print("  [yellow]control API not answering[/yellow]")
    if relay.strays:
        console.print(f"  unrecorded relay processes: {list(relay.strays)}")

    if status.streams:
        console.print(status_table(status))
    console.print(
        f"{status.running_streams}/{len(status.streams)} streams running, "
        f"{status.devices} devices attached"
    )
    if status.orphan_encoders:
        console.print(f"Orphaned encoders: {list(status.orphan_encoders)}")
    if status.lock_holder is not None:
        console.print(f"System lock held by PID {status.lock_holder}")
    if status.cleanup_in_progress:
        console.print("[yellow]Cleanup in progress[/yellow]")


@start_app.default
def start(
    *,
    parallel: Annotated[
        bool,
        Parameter(help="Launch every supervisor at once instead of one by one."),
    ] = False,
) -> None:
    """Start the relay server and one supervised stream per device.

    Exits 6 when no capture device appears, 5 when another start holds the
    system lock.
    """
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        orchestrator = ctx.orchestrator()
        report = anyio.run(lambda: orchestrator.start(parallel=parallel or None))
    print_start_report(ctx.console(), report, ctx.config)


@stop_app.default
def stop(
    *,
    force: Annotated[
        bool,
        Parameter(help="Kill everything at once and delete coordination files."),
    ] = False,
) -> None:
    """Stop every supervisor, encoder and the relay server."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        orchestrator = ctx.orchestrator()
        report = orchestrator.force_stop() if force else orchestrator.stop()
    if not ctx.quiet:
        print_stop_report(ctx.console(), report)


@restart_app.default
def restart(
    *,
    parallel: Annotated[
        bool,
        Parameter(help="Launch every supervisor at once instead of one by one."),
    ] = False,
) -> None:
    """Restart the whole system."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        orchestrator = ctx.orchestrator()
        report = anyio.run(lambda: orchestrator.restart(parallel=parallel or None))
    print_start_report(ctx.console(), report, ctx.config)


@status_app.default
def status(
    *,
    json: Annotated[bool, Parameter(help="Print the status as JSON.")] = False,
) -> None:
    """Show the state derived from live processes, locks and claims."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        orchestrator = ctx.orchestrator()
        current = anyio.run(orchestrator.status)
    if json:
        print(format_json(current))  # noqa: T201
        return
    print_status(ctx.console(), current)
