# pyright: reportUnusedFunction=false
"""Hidden command the orchestrator runs once per device."""

from typing import Annotated

import anyio
from cyclopts import App, Parameter

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import ExitCode, command_errors, exit_with_error
from streamwarden.devices import DeviceCatalog
from streamwarden.supervisor import StreamSupervisor, stream_spec_for

supervise_app = App(
    name="supervise", help="Supervise the encoder of one device.", show=False
)


@supervise_app.default
def supervise(
    *,
    device: Annotated[
        str, Parameter(help="Device name, as listed under /dev/snd/by-id.")
    ],
) -> None:
    """Claim an identity for ``device`` and keep its encoder running."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        runtime = ctx.runtime("supervisor")
        catalog = DeviceCatalog(
            dev_root=runtime.dev_root,
            proc_root=runtime.proc_root,
            logger=runtime.logger,
        )
        found = next((d for d in catalog.detect() if d.name == device), None)
        if found is None:
            runtime.logger.error("device_not_found", device=device)
            exit_with_error(
                f"Device '{device}' not found",
                ExitCode.NO_DEVICES,
                console=ctx.error_console(),
            )

        supervisor = StreamSupervisor(stream_spec_for(found, ctx.config), runtime)
        reason = anyio.run(supervisor.run)
    runtime.logger.info(
        "supervisor_exited", identity=supervisor.identity, reason=reason.value
    )
