# pyright: reportAny=false, reportExplicitAny=false, reportUnknownArgumentType=false, reportUnknownMemberType=false, reportUnknownParameterType=false, reportUnknownVariableType=false
"""Configuration validation using Pydantic schemas.

Validation runs against a single root schema built from the frozen section
models in ``_models``. Unknown keys are ignored in lenient mode and rejected
in strict mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from streamwarden.config._models._logging import LoggingConfig
from streamwarden.config._models._media import DevicesConfig, EncoderConfig, RelayConfig
from streamwarden.config._models._paths import PathsConfig
from streamwarden.config._models._runtime import (
    ErrorsConfig,
    LocksConfig,
    StartupConfig,
    SupervisorConfig,
)
from streamwarden.config._models._watchdog import WatchdogConfig
from streamwarden.exceptions import ConfigValidationError

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Represents a configuration validation issue.

    Attributes:
        key: Dotted path to the configuration key (e.g., "startup.parallel").
        message: Human-readable description of the issue.
        expected: Description of expected value or type, if available.
        actual: The actual value that caused the issue.
        source: Name of the ConfigSource where the issue was found, or None.
        severity: Whether this is an error or warning.
    """

    key: str
    message: str
    expected: str | None
    actual: Any
    source: str | None
    severity: Literal["error", "warning"]


class ConfigSchema(BaseModel):
    """Pydantic schema for the root configuration (lenient mode)."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    devices: DevicesConfig = Field(default_factory=DevicesConfig)
    startup: StartupConfig = Field(default_factory=StartupConfig)
    locks: LocksConfig = Field(default_factory=LocksConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    errors: ErrorsConfig = Field(default_factory=ErrorsConfig)


class ConfigSchemaStrict(ConfigSchema):
    """Pydantic schema for the root configuration (strict mode)."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")


def _pydantic_error_to_issue(
    error: ErrorDetails,
    source: str | None,
) -> ValidationIssue:
    """Convert a Pydantic error dict to a ValidationIssue."""
    loc = error.get("loc", ())
    key = ".".join(str(part) for part in loc)

    ctx = error.get("ctx")
    expected: str | None = None
    if ctx is not None:
        if "expected" in ctx:
            expected = str(ctx["expected"])
        elif "pattern" in ctx:
            expected = f"pattern: {ctx['pattern']}"

    return ValidationIssue(
        key=key,
        message=str(error.get("msg", "Validation error")),
        expected=expected,
        actual=error.get("input"),
        source=source,
        severity="error",
    )


def parse_config(config: dict[str, Any]) -> ConfigSchema:
    """Parse a merged configuration dictionary into typed sections.

    Raises:
        ConfigValidationError: If any section is invalid.
    """
    try:
        return ConfigSchema.model_validate(config)
    except ValidationError as e:
        issues = [_pydantic_error_to_issue(err, source=None) for err in e.errors()]
        raise_if_validation_errors(issues)
        raise  # pragma: no cover - errors() is never empty


def validate_config(
    config: dict[str, Any],
    *,
    strict: bool = False,
    source: str | None = None,
) -> list[ValidationIssue]:
    """Validate a configuration dictionary.

    Args:
        config: The configuration dictionary to validate.
        strict: If True, unknown keys are errors. If False, they are ignored.
        source: Source name attached to every issue.

    Returns:
        List of ValidationIssue objects. Empty list indicates valid config.
    """
    schema_class = ConfigSchemaStrict if strict else ConfigSchema

    try:
        _ = schema_class.model_validate(config)
    except ValidationError as e:
        return [_pydantic_error_to_issue(err, source=source) for err in e.errors()]
    else:
        return []


def raise_if_validation_errors(
    issues: list[ValidationIssue],
    source: str | None = None,
) -> None:
    """Raise ConfigValidationError for the first error in ``issues``.

    Raises:
        ConfigValidationError: If any issues have severity="error".
    """
    errors = [i for i in issues if i.severity == "error"]
    if errors:
        issue = errors[0]
        msg = f"Invalid configuration value for '{issue.key}': {issue.message}"
        raise ConfigValidationError(
            msg,
            key=issue.key,
            value=issue.actual,
            expected=issue.expected or issue.message,
            source=source or issue.source,
        )
