# pyright: reportUnusedFunction=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Install systemd units and a logrotate policy."""

import shlex
import shutil
import sys
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import command_errors
from streamwarden.utils import get_log_dir

install_app = App(name="install", help="Write systemd units and logrotate config.")

SERVICE_NAME = "streamwarden.service"
WATCHDOG_SERVICE_NAME = "streamwarden-watchdog.service"
LOGROTATE_NAME = "streamwarden"

SERVICE_TEMPLATE = """\
[Unit]
Description=streamwarden audio stream manager
After=network.target sound.target
Wants=sound.target

[Service]
Type=oneshot
RemainAfterExit=yes
ExecStart={command} start
ExecStop={command} stop
ExecReload={command} restart
TimeoutStartSec=300
TimeoutStopSec=120
LimitNOFILE=65536

[Install]
WantedBy=multi-user.target
"""

WATCHDOG_TEMPLATE = """\
[Unit]
Description=streamwarden relay server resource watchdog
After={service}
Requires={service}

[Service]
Type=simple
ExecStart={command} monitor
Restart=on-failure
RestartSec=30

[Install]
WantedBy=multi-user.target
"""

LOGROTATE_TEMPLATE = """\
{log_dir}/*.log {log_dir}/streams/*.log {{
    daily
    rotate {backup_count}
    maxsize {max_bytes}
    compress
    delaycompress
    missingok
    notifempty
    copytruncate
}}
"""


def base_command(config_path: Path | None) -> str:
    """Return the command line that invokes this CLI from a unit file."""
    executable = shutil.which("streamwarden")
    argv = [executable] if executable else [sys.executable, "-m", "streamwarden.cli"]
    if config_path is not None:
        argv.extend(["--config", str(config_path.resolve())])
    return shlex.join(argv)


def render_units(command: str) -> dict[str, str]:
    return {
        SERVICE_NAME: SERVICE_TEMPLATE.format(command=command),
        WATCHDOG_SERVICE_NAME: WATCHDOG_TEMPLATE.format(
            command=command, service=SERVICE_NAME
        ),
    }


def render_logrotate(
    log_dir: Path, max_bytes: int = 100 * 1024 * 1024, backup_count: int = 3
) -> str:
    """Render the logrotate policy; it is what rotates the shared logs."""
    return LOGROTATE_TEMPLATE.format(
        log_dir=log_dir, max_bytes=max_bytes, backup_count=backup_count
    )


@install_app.default
def install(
    *,
    unit_dir: Annotated[
        Path, Parameter(help="Directory the systemd units are written to.")
    ] = Path("/etc/systemd/system"),
    logrotate_dir: Annotated[
        Path, Parameter(help="Directory the logrotate policy is written to.")
    ] = Path("/etc/logrotate.d"),
) -> None:
    """Write the stream manager and watchdog units and a logrotate policy.

    Exits 2 when the target directories are not writable.
    """
    ctx = CLIContext.get_current()
    console = ctx.console()
    files = {
        unit_dir / name: content
        for name, content in render_units(base_command(ctx.config_path)).items()
    }
    files[logrotate_dir / LOGROTATE_NAME] = render_logrotate(
        get_log_dir(ctx.config.paths),
        ctx.config.logging.max_bytes,
        ctx.config.logging.backup_count,
    )

    with command_errors(ctx.logger, console=ctx.error_console()):
        for path, content in files.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            _ = path.write_text(content)

    if ctx.logger is not None:
        ctx.logger.info("installed", files=[str(path) for path in files])
    if ctx.quiet:
        return
    for path in files:
        console.print(f"Wrote {path}")
    console.print(
        "Enable with: systemctl daemon-reload && systemctl enable --now "
        f"{SERVICE_NAME} {WATCHDOG_SERVICE_NAME}"
    )
