"""Logging configuration model."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from streamwarden.config._models._common import LogFormat, LogLevel


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to the system log file (empty uses the log directory).
        max_bytes: Size at which logrotate rotates the shared logs.
        backup_count: Number of rotated shared logs logrotate keeps.
        stream_log_max_bytes: Size at which a per-stream log is truncated.
        relay_log_max_bytes: Size at which the relay server log is rotated.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""
    max_bytes: int = Field(default=100 * 1024 * 1024, gt=0)
    backup_count: int = Field(default=3, ge=0)
    stream_log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    relay_log_max_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
