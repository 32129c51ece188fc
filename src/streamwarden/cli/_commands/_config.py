# pyright: reportUnusedFunction=false
"""Commands that inspect configuration, dependencies and devices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated

from cyclopts import App, Parameter
from rich.table import Table

from streamwarden.cli._context import CLIContext
from streamwarden.cli._shared import (
    ExitCode,
    command_errors,
    exit_with_error,
    format_json,
)
from streamwarden.config import validate_config
from streamwarden.devices import DeviceCatalog, build_mappings
from streamwarden.relay import port_owners
from streamwarden.utils import command_exists

if TYPE_CHECKING:
    from streamwarden.config import Config
    from streamwarden.devices import DeviceInfo, DeviceMapping

config_app = App(name="config", help="Show the effective configuration.")
validate_app = App(
    name="validate", help="Check configuration, dependencies and devices."
)
mapping_app = App(name="mapping", help="Show how devices map to stream identities.")

# Helpers used only by optional features
OPTIONAL_COMMANDS: dict[str, str] = {
    "arecord": "device capture test",
    "alsactl": "audio reset during cleanup",
}


@dataclass(slots=True)
class ValidationReport:
    """Findings of the ``validate`` command, most severe first."""

    config_errors: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    devices: int = 0

    @property
    def exit_code(self) -> ExitCode:
        if self.config_errors:
            return ExitCode.CONFIG_ERROR
        if self.missing:
            return ExitCode.MISSING_DEPENDENCY
        if self.devices == 0:
            return ExitCode.NO_DEVICES
        return ExitCode.SUCCESS


def detect_devices(ctx: CLIContext) -> list[DeviceInfo]:
    catalog = DeviceCatalog(
        dev_root=ctx.dev_root, proc_root=ctx.proc_root, logger=ctx.logger
    )
    return catalog.detect()


def validate_setup(ctx: CLIContext) -> ValidationReport:
    """Collect every configuration, dependency, port and device problem."""
    config = ctx.config
    report = ValidationReport()
    if ctx.config_error is not None:
        report.config_errors.append(ctx.config_error)

    for source in config.sources:
        if not source.values:
            continue
        for issue in validate_config(
            source.values, strict=True, source=source.name.value
        ):
            line = f"{issue.source}: {issue.key}: {issue.message}"
            if issue.severity == "error":
                report.config_errors.append(line)
            else:
                report.warnings.append(line)

    report.missing.extend(
        command
        for command in (config.relay.binary, config.encoder.binary)
        if not command_exists(command)
    )
    for command, purpose in OPTIONAL_COMMANDS.items():
        if not command_exists(command):
            report.warnings.append(f"'{command}' not found; {purpose} unavailable")

    relay = config.relay
    for port, owner in port_owners(
        (relay.rtsp_port, relay.api_port, relay.metrics_port)
    ).items():
        holder = f"PID {owner}" if owner is not None else "another process"
        report.warnings.append(f"Port {port} is in use by {holder}")

    report.devices = len(detect_devices(ctx))
    return report


def mapping_table(mappings: list[DeviceMapping], config: Config) -> Table:
    table = Table(title="Device mapping")
    table.add_column("Device")
    table.add_column("Card")
    table.add_column("Alias")
    table.add_column("Identity")
    table.add_column("Encoder")
    table.add_column("Matched by")
    for mapping in mappings:
        settings = mapping.settings
        table.add_row(
            mapping.device.name,
            str(mapping.device.card),
            mapping.alias or "-",
            mapping.base_identity,
            f"{settings.codec.value} {settings.bitrate} "
            f"{settings.sample_rate}Hz {settings.channels}ch",
            settings.matched_by,
        )
    return table


@config_app.default
def show_config(
    *,
    json: Annotated[bool, Parameter(help="Print the configuration as JSON.")] = False,
) -> None:
    """Show the effective configuration and the sources it came from."""
    ctx = CLIContext.get_current()
    config = ctx.config
    sources = [
        {
            "name": source.name.value,
            "path": str(source.path) if source.path is not None else None,
            "exists": source.exists,
        }
        for source in config.sources
    ]
    if json:
        data = {"sources": sources, "config": config.to_dict()}
        print(format_json(data))  # noqa: T201
        return

    console = ctx.console()
    if ctx.config_error is not None:
        console.print(f"[yellow]Using defaults:[/yellow] {ctx.config_error}")
    for source in sources:
        marker = "x" if source["exists"] else " "
        location = f" ({source['path']})" if source["path"] else ""
        console.print(f"[{marker}] {source['name']}{location}", markup=False)
    console.print()
    console.print(config.to_toml(include_defaults=True), markup=False)


@validate_app.default
def validate() -> None:
    """Check the configuration, required programs and attached devices.

    Exits 4 on configuration errors, 3 when the relay server or encoder is
    missing, 6 when no capture device is attached.
    """
    ctx = CLIContext.get_current()
    console = ctx.console()
    with command_errors(ctx.logger, console=ctx.error_console()):
        report = validate_setup(ctx)

    for line in report.config_errors:
        console.print(f"[red]config[/red]  {line}", highlight=False)
    for command in report.missing:
        console.print(f"[red]missing[/red] required program '{command}'")
    for line in report.warnings:
        console.print(f"[yellow]warning[/yellow] {line}", highlight=False)
    console.print(f"{report.devices} capture devices detected")

    code = report.exit_code
    if code is not ExitCode.SUCCESS:
        exit_with_error("Validation failed", code, console=ctx.error_console())
    if not ctx.quiet:
        console.print("[green]Configuration valid[/green]")


@mapping_app.default
def mapping() -> None:
    """Show each detected device with its alias, identity and encoder settings."""
    ctx = CLIContext.get_current()
    with command_errors(ctx.logger, console=ctx.error_console()):
        devices = detect_devices(ctx)
    if not devices:
        exit_with_error(
            "No USB capture devices detected",
            ExitCode.NO_DEVICES,
            console=ctx.error_console(),
        )
    config = ctx.config
    mappings = build_mappings(devices, config.encoder, config.devices)
    ctx.console().print(mapping_table(mappings, config))
