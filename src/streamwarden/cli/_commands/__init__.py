"""streamwarden CLI commands."""
# pyright: reportUnusedCallResult=false

from __future__ import annotations

from typing import TYPE_CHECKING

from ._config import config_app, mapping_app, validate_app
from ._debug import debug_app
from ._install import install_app
from ._lifecycle import restart_app, start_app, status_app, stop_app
from ._monitor import monitor_app
from ._supervise import supervise_app

if TYPE_CHECKING:
    from cyclopts import App

__all__ = [
    "config_app",
    "debug_app",
    "install_app",
    "mapping_app",
    "monitor_app",
    "register_commands",
    "restart_app",
    "start_app",
    "status_app",
    "stop_app",
    "supervise_app",
    "validate_app",
]


def register_commands(app: App) -> None:
    app.command(start_app)
    app.command(stop_app)
    app.command(restart_app)
    app.command(status_app)
    app.command(config_app)
    app.command(mapping_app)
    app.command(validate_app)
    app.command(debug_app)
    app.command(monitor_app)
    app.command(install_app)
    app.command(supervise_app)

    @app.command(name="help")
    def _help() -> None:  # pyright: ignore[reportUnusedFunction]
        """Show this help."""
        app.help_print()
