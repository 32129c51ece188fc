"""Fixtures for CLI command tests."""

from collections.abc import Callable, Generator

import pytest
import structlog
from rich.console import Console

from streamwarden.cli import CLIContext, create_app
from streamwarden.config import Config
from tests.conftest import SandboxPaths


@pytest.fixture
def cli_context(
    config: Config,
    sandbox: SandboxPaths,
    logger: structlog.typing.FilteringBoundLogger,
) -> Generator[CLIContext]:
    """Install a CLI context over the sandbox, as the global options would."""
    ctx = CLIContext(
        config=config,
        logger=logger,
        proc_root=sandbox.proc_root,
        dev_root=sandbox.dev_root,
    )
    CLIContext.set_current(ctx)
    yield ctx
    CLIContext.reset()


@pytest.fixture
def run_cli(
    console: Console, monkeypatch: pytest.MonkeyPatch
) -> Callable[..., int]:
    """Run a command against the installed context and return its exit code."""
    # Commands build their own consoles; keep tables from wrapping.
    monkeypatch.setenv("COLUMNS", "200")
    app = create_app(console=console, error_console=console)

    def _run(*args: str) -> int:
        try:
            app(args)
        except SystemExit as e:
            return e.code if isinstance(e.code, int) else 1
        else:
            return 0

    return _run
