"""CLI context for global state management.

The CLIContext is set once at CLI startup from the global options and the
loaded configuration, and made available to all commands via contextvars.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console

from streamwarden.config import Config
from streamwarden.orchestrator import Orchestrator, ProcessLauncher
from streamwarden.runtime import Runtime, create_runtime

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger


# Thread-safe context variable for CLIContext
_current_cli_context: contextvars.ContextVar[CLIContext | None] = (
    contextvars.ContextVar("cli_context", default=None)
)


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global CLI context with configuration and options.

    Attributes:
        config: Loaded configuration object.
        verbose: Enable verbose output with additional details.
        quiet: Suppress non-essential output.
        no_color: Disable colored output.
        config_path: Explicit configuration file, passed on to supervisors.
        config_error: Error message if config loading fell back to defaults.
        logger: Structured logger for CLI commands (writes to file only).
        proc_root: Mount point of procfs.
        dev_root: Root of the ``snd`` device nodes.
    """

    config: Config = field(repr=False)
    verbose: bool = False
    quiet: bool = False
    no_color: bool = False
    config_path: Path | None = None
    config_error: str | None = None
    logger: FilteringBoundLogger | None = field(default=None, repr=False)
    proc_root: Path = Path("/proc")
    dev_root: Path = Path("/dev")

    @classmethod
    def get_current(cls) -> CLIContext:
        """Get current active CLIContext, or create a default if not set.

        Returns:
            The currently active CLIContext, or a default instance if none is set.
        """
        ctx = _current_cli_context.get()
        if ctx is not None:
            return ctx

        return cls(config=Config())

    @classmethod
    def set_current(cls, ctx: CLIContext) -> None:
        """Set the current active CLIContext.

        Args:
            ctx: The CLIContext to set as current.
        """
        _ = _current_cli_context.set(ctx)

    @classmethod
    def reset(cls) -> None:
        """Reset to default context.

        This is primarily useful for testing to ensure a clean state between tests.
        """
        _ = _current_cli_context.set(None)

    def console(self) -> Console:
        return Console(no_color=self.no_color, highlight=False)

    def error_console(self) -> Console:
        return Console(stderr=True, no_color=self.no_color, highlight=False)

    def runtime(self, component: str) -> Runtime:
        """Build the runtime of this CLI process for ``component``."""
        return create_runtime(
            self.config,
            component=component,
            proc_root=self.proc_root,
            dev_root=self.dev_root,
        )

    def orchestrator(self, runtime: Runtime | None = None) -> Orchestrator:
        """Build an orchestrator whose supervisors load the same config file."""
        return Orchestrator(
            runtime or self.runtime("orchestrator"),
            launcher=ProcessLauncher(config_file=self.config_path),
        )
