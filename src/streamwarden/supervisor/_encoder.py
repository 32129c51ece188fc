"""Encoder command line construction."""

from __future__ import annotations

from typing import TYPE_CHECKING

from streamwarden.config import Codec

if TYPE_CHECKING:
    from streamwarden.devices import DeviceInfo, EncoderSettings

_CODEC_ARGS: dict[Codec, tuple[str, ...]] = {
    Codec.OPUS: ("-c:a", "libopus"),
    Codec.AAC: ("-c:a", "aac"),
    Codec.MP3: ("-c:a", "libmp3lame"),
}


def codec_args(settings: EncoderSettings) -> tuple[str, ...]:
    """Return the output codec arguments for ``settings``."""
    args = (*_CODEC_ARGS[settings.codec], "-b:a", settings.bitrate)
    if settings.codec is Codec.OPUS:
        args = (*args, "-application", "audio")
    return args


def build_encoder_command(
    binary: str,
    device: DeviceInfo,
    settings: EncoderSettings,
    stream_url: str,
) -> tuple[str, ...]:
    """Build the encoder argv that publishes ``device`` to ``stream_url``.

    Args:
        binary: Encoder executable.
        device: Capture device.
        settings: Resolved encoder settings.
        stream_url: RTSP URL of the stream identity on the relay server.

    Returns:
        The full argv.
    """
    return (
        binary,
        "-hide_banner",
        "-loglevel",
        "warning",
        "-analyzeduration",
        str(settings.analyze_duration),
        "-probesize",
        str(settings.probe_size),
        "-f",
        "alsa",
        "-ar",
        str(settings.sample_rate),
        "-ac",
        str(settings.channels),
        "-thread_queue_size",
        str(settings.thread_queue_size),
        "-i",
        device.alsa_input,
        "-af",
        "aresample=async=1:first_pts=0",
        *codec_args(settings),
        "-f",
        "rtsp",
        "-rtsp_transport",
        "tcp",
        stream_url,
    )


def encoder_url_prefix(host: str, rtsp_port: int) -> str:
    """Return the URL prefix every encoder publishes under.

    Orphaned encoders are recognized by this prefix on their command line.
    """
    return f"rtsp://{host}:{rtsp_port}/"
