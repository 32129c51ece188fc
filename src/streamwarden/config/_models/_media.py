"""Relay server, encoder and device configuration models."""

from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from streamwarden.config._models._common import Codec, LogLevel


class RelayConfig(BaseModel):
    """Relay server (MediaMTX) configuration section.

    Attributes:
        binary: Relay server executable name or path.
        host: Host the relay server is reached on.
        rtsp_port: RTSP listener port.
        api_port: Control API port.
        metrics_port: Metrics listener port.
        config_file: Generated configuration path (empty uses the run directory).
        api_timeout: Seconds to wait for the control API after spawn.
        stop_timeout: Grace period before the relay server is force-killed.
        log_level: Relay server's own log level.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    binary: str = "mediamtx"
    host: str = "localhost"
    rtsp_port: int = Field(default=8554, gt=0, lt=65536)
    api_port: int = Field(default=9997, gt=0, lt=65536)
    metrics_port: int = Field(default=9998, gt=0, lt=65536)
    config_file: str = ""
    api_timeout: float = Field(default=60.0, gt=0)
    stop_timeout: float = Field(default=30.0, gt=0)
    log_level: LogLevel = LogLevel.INFO

    @property
    def ports(self) -> tuple[int, int, int]:
        """Return every port the relay server binds."""
        return (self.rtsp_port, self.api_port, self.metrics_port)

    @property
    def api_url(self) -> str:
        """Return the base URL of the control API."""
        return f"http://{self.host}:{self.api_port}"

    def stream_url(self, identity: str) -> str:
        """Return the RTSP URL a stream identity is published on."""
        return f"rtsp://{self.host}:{self.rtsp_port}/{identity}"


class EncoderConfig(BaseModel):
    """Default encoder (ffmpeg) settings applied to every device.

    Attributes:
        binary: Encoder executable name or path.
        sample_rate: Capture sample rate in Hz.
        channels: Capture channel count.
        codec: Output codec.
        bitrate: Output bitrate as understood by ffmpeg (e.g. ``128k``).
        thread_queue_size: Input packet queue size.
        analyze_duration: Microseconds ffmpeg spends analyzing input.
        probe_size: Bytes ffmpeg probes before streaming.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    binary: str = "ffmpeg"
    sample_rate: int = Field(default=48000, gt=0)
    channels: int = Field(default=2, ge=1, le=32)
    codec: Codec = Codec.OPUS
    bitrate: str = Field(default="128k", pattern=r"^[0-9]+[kKmM]?$")
    thread_queue_size: int = Field(default=8192, gt=0)
    analyze_duration: int = Field(default=5000000, ge=0)
    probe_size: int = Field(default=5000000, ge=32)


class DeviceOverride(BaseModel):
    """Per-device encoder settings selected by one matcher.

    Exactly one of ``name``, ``alias`` or ``pattern`` selects the device.
    Unset encoder fields fall back to the ``encoder`` section.

    Attributes:
        name: Exact device name (``/dev/snd/by-id`` entry).
        alias: Friendly alias assigned in ``devices.aliases``.
        pattern: Shell-style glob matched against the device name.
        sample_rate: Capture sample rate override.
        channels: Channel count override.
        codec: Codec override.
        bitrate: Bitrate override.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    alias: str | None = None
    pattern: str | None = None
    sample_rate: int | None = Field(default=None, gt=0)
    channels: int | None = Field(default=None, ge=1, le=32)
    codec: Codec | None = None
    bitrate: str | None = Field(default=None, pattern=r"^[0-9]+[kKmM]?$")

    @model_validator(mode="after")
    def _one_selector(self) -> Self:
        selectors = [s for s in (self.name, self.alias, self.pattern) if s]
        if len(selectors) != 1:
            msg = "exactly one of name, alias or pattern must be set"
            raise ValueError(msg)
        return self


class DevicesConfig(BaseModel):
    """Device naming and per-device override section.

    Attributes:
        overrides: Ordered per-device encoder overrides.
        aliases: Device name to friendly alias (used as the stream identity).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    overrides: tuple[DeviceOverride, ...] = ()
    aliases: dict[str, str] = Field(default_factory=dict)
