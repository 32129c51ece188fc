"""The command-line interface for streamwarden."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

from streamwarden.config import safe_load_config
from streamwarden.exceptions import ConfigError
from streamwarden.utils import create_cli_logger, get_system_log_file

from ._commands import register_commands
from ._context import CLIContext
from ._shared import ExitCode, exit_with_error

APP_HELP = "Supervise a relay server and one audio encoder per USB capture device."


def _cli_overrides(*, verbose: bool) -> dict[str, object] | None:
    if verbose:
        return {"logging": {"level": "debug"}}
    return None


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="streamwarden",
        help=APP_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.meta.default
    def _default(  # pyright: ignore[reportUnusedFunction]
        *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
        verbose: Annotated[bool, Parameter(help="Enable verbose output")] = False,
        quiet: Annotated[bool, Parameter(help="Suppress non-essential output")] = False,
        no_color: Annotated[
            bool, Parameter(name="--no-color", help="Disable colored output")
        ] = False,
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
    ) -> None:
        """Launch the streamwarden CLI with global options.

        Args:
            tokens: Command tokens to pass to subcommands.
            verbose: Log at debug level.
            quiet: Suppress non-essential output.
            no_color: Disable colored output.
            config: Explicit path to config file.
        """
        try:
            loaded_config, config_error = safe_load_config(
                config_path=config,
                cli_overrides=_cli_overrides(verbose=verbose),
            )
        except ConfigError as e:
            exit_with_error(str(e), ExitCode.CONFIG_ERROR, console=error_console)

        cli_logger = create_cli_logger(
            level=loaded_config.logging.level.value,
            log_format=loaded_config.logging.format.value,  # type: ignore[arg-type]
            log_file=str(get_system_log_file(loaded_config)),
            command=tokens[0] if tokens else "",
        )

        ctx = CLIContext(
            config=loaded_config,
            verbose=verbose,
            quiet=quiet,
            no_color=no_color,
            config_path=config,
            config_error=config_error,
            logger=cli_logger,
        )
        CLIContext.set_current(ctx)

        try:
            app(tokens)
        finally:
            CLIContext.reset()

    register_commands(app)
    return app


app = create_app()


def main() -> None:
    """Default entrypoint for the `streamwarden` CLI."""
    app.meta()
