# pyright: reportUnusedFunction=false
"""Resource watchdog command."""

from __future__ import annotations

import signal
from typing import TYPE_CHECKING, Annotated

import anyio
from cyclopts import App, Parameter

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import ExitCode, command_errors
from streamwarden.utils import create_recovery_logger
from streamwarden.watchdog import Watchdog

if TYPE_CHECKING:
    from rich.console import Console

    from streamwarden.watchdog import CheckResult

monitor_app = App(
    name="monitor", help="Watch relay server resources and recover when needed."
)


def print_check(console: Console, result: CheckResult) -> None:
    sample = result.sample
    if sample is None:
        console.print("Relay server: [red]not running[/red]")
    else:
        console.print(
            f"Relay server PID {sample.pid}: CPU {sample.cpu}% "
            f"(combined {sample.combined_cpu}% over {sample.encoders} encoders), "
            f"memory {sample.memory}%, {sample.fds} fds, up {sample.uptime}s"
        )
    if result.trigger is None:
        console.print("[green]Resources normal[/green]")
        return
    trigger = result.trigger
    style = "red" if result.critical else "yellow"
    console.print(f"[{style}]{trigger.kind.value}[/{style}]: {trigger.reason}")


async def run_until_signal(watchdog: Watchdog) -> None:
    """Run the watchdog loop until SIGTERM or SIGINT."""
    async with anyio.create_task_group() as tg:

        async def _watch_signals() -> None:
            with anyio.open_signal_receiver(signal.SIGTERM, signal.SIGINT) as signals:
                async for _ in signals:
                    tg.cancel_scope.cancel()
                    return

        tg.start_soon(_watch_signals)
        await watchdog.run()
        tg.cancel_scope.cancel()


@monitor_app.default
def monitor(
    *,
    once: Annotated[
        bool,
        Parameter(help="Check once without recovering; exit 7 when critical."),
    ] = False,
) -> None:
    """Run the resource watchdog, or report a single resource check."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        runtime = ctx.runtime("watchdog")
        watchdog = Watchdog.create(
            runtime,
            ctx.orchestrator(runtime),
            recovery_log=create_recovery_logger(ctx.config),
        )
        if not once:
            anyio.run(run_until_signal, watchdog)
            return
        result = anyio.run(lambda: watchdog.check(recover=False))

    print_check(ctx.console(), result)
    if result.critical:
        raise SystemExit(ExitCode.CRITICAL_RESOURCES)
