"""Execution utilities for short-lived helper commands.

Helper commands (``arecord``, ``alsactl``, ``systemctl``) are run with a
timeout and their output captured. Long-running children (relay server,
encoders, supervisors) are spawned elsewhere and never go through here.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

# Default timeout in seconds
DEFAULT_TIMEOUT: float = 10.0

# Maximum output size in bytes
MAX_OUTPUT_BYTES: int = 102400  # 100KB


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result from command execution.

    Attributes:
        success: Whether the command ran and exited with status 0.
        exit_code: Process exit code, or None if execution failed.
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        error: Error message if execution failed (timeout, not found, etc.).
        timed_out: Whether the command timed out.
        command_not_found: Whether the command was not found.
    """

    success: bool
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    timed_out: bool = False
    command_not_found: bool = False


@dataclass(frozen=True, slots=True)
class CommandConfig:
    """Configuration for command execution.

    Attributes:
        argv: Program and arguments.
        cwd: Working directory for execution.
        env: Additional environment variables to set.
        timeout: Execution timeout in seconds.
    """

    argv: tuple[str, ...]
    cwd: str | Path | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT


def truncate_output(output: str, max_bytes: int = MAX_OUTPUT_BYTES) -> str:
    """Truncate output to max bytes, preserving valid UTF-8.

    Args:
        output: The string to truncate.
        max_bytes: Maximum size in bytes.

    Returns:
        Truncated string with indicator if truncated.
    """
    if not output:
        return output

    encoded = output.encode("utf-8")
    if len(encoded) <= max_bytes:
        return output

    truncated = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return truncated + "\n... [output truncated]"


def command_exists(name: str) -> bool:
    """Return whether ``name`` resolves to an executable on PATH."""
    return shutil.which(name) is not None


def run_command(config: CommandConfig) -> CommandResult:
    """Execute a helper command and capture its output.

    Args:
        config: Command configuration.

    Returns:
        CommandResult with execution outcome.
    """
    if not config.argv:
        return CommandResult(success=False, error="No command specified")

    env = {**os.environ, **config.env}
    cwd = str(config.cwd) if config.cwd else None

    try:
        result = subprocess.run(  # noqa: S603
            config.argv,
            env=env,
            cwd=cwd,
            capture_output=True,
            timeout=config.timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            success=False,
            error=f"Command timed out after {config.timeout}s",
            timed_out=True,
        )
    except FileNotFoundError as e:
        return CommandResult(
            success=False,
            error=str(e),
            command_not_found=True,
        )
    except OSError as e:
        return CommandResult(success=False, error=str(e))

    return CommandResult(
        success=result.returncode == 0,
        exit_code=result.returncode,
        stdout=truncate_output(result.stdout.decode("utf-8", errors="replace")),
        stderr=truncate_output(result.stderr.decode("utf-8", errors="replace")),
    )


def spawn_detached(argv: Sequence[str], *, output: Path | None = None) -> int | None:
    """Start a process in its own session that outlives the caller.

    Used for the relay server, the stream supervisors and best-effort
    helpers that must never block the caller (the global audio reset during
    cleanup sweeps).

    Args:
        argv: Program and arguments.
        output: File that receives the child's stdout and stderr in append
            mode. Output is discarded when None.

    Returns:
        The child PID, or None if the program could not be started.
    """
    try:
        if output is None:
            process = subprocess.Popen(  # noqa: S603
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            with output.open("ab") as sink:
                process = subprocess.Popen(  # noqa: S603
                    list(argv),
                    stdin=subprocess.DEVNULL,
                    stdout=sink,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
    except OSError:
        return None
    return process.pid
