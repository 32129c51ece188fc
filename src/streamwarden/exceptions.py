"""streamwarden exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class StreamWardenError(Exception):
    """Base exception for streamwarden errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(StreamWardenError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
        source: str | None = None,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected
        self.source: str | None = source


# =============================================================================
# Coordination Exceptions
# =============================================================================


class CoordinationError(StreamWardenError):
    """Base exception for cross-process coordination errors."""


class LockTimeoutError(CoordinationError):
    """Raised when a named lock cannot be acquired before the deadline.

    Attributes:
        name: The lock name.
        timeout: Seconds waited before giving up.
        holder_pid: PID recorded by the current holder, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        name: str,
        timeout: float,
        holder_pid: int | None = None,
    ) -> None:
        """Initialize with error message and lock context."""
        super().__init__(message)
        self.name: str = name
        self.timeout: float = timeout
        self.holder_pid: int | None = holder_pid


class ClaimExhaustedError(CoordinationError):
    """Raised when every candidate identity for a device is already claimed.

    Attributes:
        base: The base stream identity.
        attempts: Number of candidates tried.
    """

    def __init__(self, message: str, *, base: str, attempts: int) -> None:
        """Initialize with error message and claim context."""
        super().__init__(message)
        self.base: str = base
        self.attempts: int = attempts


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(StreamWardenError):
    """Base exception for stream supervisor errors."""


class EncoderStartError(SupervisorError):
    """Raised when the encoder process cannot be spawned."""

    def __init__(
        self,
        message: str,
        *,
        identity: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and stream context."""
        super().__init__(message)
        self.identity: str = identity
        self.cause: Exception | None = cause


class RestartCapReachedError(SupervisorError):
    """Raised when a supervisor has exhausted its restart budget."""

    def __init__(self, message: str, *, identity: str, restarts: int) -> None:
        """Initialize with error message and stream context."""
        super().__init__(message)
        self.identity: str = identity
        self.restarts: int = restarts


# =============================================================================
# Orchestrator Exceptions
# =============================================================================


class OrchestratorError(StreamWardenError):
    """Base exception for orchestrator errors."""


class NoDevicesError(OrchestratorError):
    """Raised when no capture devices are present after stabilization."""


class PortConflictError(OrchestratorError):
    """Raised when a port required by the relay server is already bound."""

    def __init__(self, message: str, *, ports: tuple[int, ...]) -> None:
        """Initialize with error message and the conflicting ports."""
        super().__init__(message)
        self.ports: tuple[int, ...] = ports


class RelayStartError(OrchestratorError):
    """Raised when the relay server dies or never becomes ready.

    Attributes:
        output_tail: Last lines of the relay server's captured output.
    """

    def __init__(self, message: str, *, output_tail: str = "") -> None:
        """Initialize with error message and captured output."""
        super().__init__(message)
        self.output_tail: str = output_tail


class StreamStartError(OrchestratorError):
    """Raised in fail-fast mode when one device's stream could not be started."""

    def __init__(self, message: str, *, device: str) -> None:
        """Initialize with error message and the failing device."""
        super().__init__(message)
        self.device: str = device


class StreamValidationError(OrchestratorError):
    """Raised when no stream became ready after start."""

    def __init__(self, message: str, *, identities: tuple[str, ...] = ()) -> None:
        """Initialize with error message and the identities that were tried."""
        super().__init__(message)
        self.identities: tuple[str, ...] = identities


# =============================================================================
# Environment Exceptions
# =============================================================================


class DependencyMissingError(StreamWardenError):
    """Raised when a required external program is not installed."""

    def __init__(self, message: str, *, command: str) -> None:
        """Initialize with error message and the missing command."""
        super().__init__(message)
        self.command: str = command


class PermissionDeniedError(StreamWardenError):
    """Raised when the process lacks access to a required path or device."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialize with error message and the inaccessible path."""
        super().__init__(message)
        self.path: Path | None = path


class RecoveryError(StreamWardenError):
    """Raised by a recovery action that could not complete."""

    def __init__(self, message: str, *, level: int) -> None:
        """Initialize with error message and the recovery level."""
        super().__init__(message)
        self.level: int = level
