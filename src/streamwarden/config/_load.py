from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

from streamwarden.exceptions import ConfigError, ConfigLoadError

from ._models import Config, ErrorMode

if TYPE_CHECKING:
    from pathlib import Path


def _strict_mode() -> bool:
    """Return whether configuration problems must be fatal.

    Strict when ``STREAMWARDEN_STRICT_CONFIG=1`` or when the error mode is
    set to fail-fast through the environment. The error mode in a config
    file cannot be honoured here because that file is what failed to load.
    """
    if os.environ.get("STREAMWARDEN_STRICT_CONFIG", "0") == "1":
        return True
    mode = os.environ.get("STREAMWARDEN_ERRORS__MODE", "").strip().lower()
    return mode == ErrorMode.FAIL_FAST.value


def safe_load_config(
    *,
    config_path: Path | None = None,
    cli_overrides: dict[str, object] | None = None,
) -> tuple[Config, str | None]:
    """Load configuration with error handling.

    In fail-safe mode a broken configuration prints a warning to stderr and
    falls back to the defaults. In fail-fast mode the error propagates so
    the CLI can exit with the configuration error code. An explicit
    ``config_path`` that does not exist is always an error.

    Args:
        config_path: Explicit path to config file (--config flag).
        cli_overrides: CLI argument overrides to pass to Config.load().

    Returns:
        Tuple of (Config, error_message). On success, error_message is None.

    Raises:
        ConfigError: In fail-fast mode, or for a missing explicit file.
    """
    if config_path is not None and not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise ConfigLoadError(msg, path=config_path)

    try:
        config = Config.load(
            config_path=config_path,
            include_env=True,
            cli_overrides=cli_overrides,
        )
    except ConfigError as e:
        if _strict_mode():
            raise
        error_msg = str(e)
        print(  # noqa: T201
            f"Warning: Failed to load config, using defaults: {error_msg}",
            file=sys.stderr,
        )
        return Config(), error_msg
    except OSError as e:
        error_msg = f"Failed to load config: {e}"
        if _strict_mode():
            raise ConfigLoadError(error_msg, path=config_path) from e
        print(f"Warning: {error_msg}", file=sys.stderr)  # noqa: T201
        return Config(), error_msg
    else:
        return config, None
