"""Data models for capture devices."""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations

from streamwarden.config import Codec


class DeviceSource(StrEnum):
    """How a device was discovered."""

    BY_ID = "by-id"
    CARDS = "cards"


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """A USB capture device as seen by ALSA.

    Attributes:
        name: Stable device name (the ``/dev/snd/by-id`` entry, or a name
            synthesized from ``/proc/asound/cards``).
        card: ALSA card number.
        card_id: ALSA card id from ``/proc/asound/cards``, if known.
        description: Human-readable card description.
        usb_id: ``vendor:product`` from ``/proc/asound/card<N>/usbid``.
        source: Discovery path that found the device.
    """

    name: str
    card: int
    card_id: str = ""
    description: str = ""
    usb_id: str = ""
    source: DeviceSource = DeviceSource.BY_ID

    @property
    def device_ref(self) -> str:
        """Return the reference recorded with a claim for this device."""
        return self.name

    @property
    def alsa_input(self) -> str:
        """Return the ALSA input specifier passed to the encoder."""
        return f"plughw:{self.card},0"

    def capture_node(self, dev_root: Path) -> Path:
        """Return the capture PCM node whose presence means the device exists."""
        return dev_root / "snd" / f"pcmC{self.card}D0c"


@dataclass(frozen=True, slots=True)
class EncoderSettings:
    """Resolved encoder parameters for one device.

    Attributes:
        sample_rate: Capture sample rate in Hz.
        channels: Capture channel count.
        codec: Output codec.
        bitrate: Output bitrate.
        thread_queue_size: Input packet queue size.
        analyze_duration: Input analysis duration in microseconds.
        probe_size: Input probe size in bytes.
        matched_by: Name of the matcher that supplied the overrides.
    """

    sample_rate: int
    channels: int
    codec: Codec
    bitrate: str
    thread_queue_size: int
    analyze_duration: int
    probe_size: int
    matched_by: str = "default"


@dataclass(frozen=True, slots=True)
class DeviceMapping:
    """One row of the device mapping report."""

    device: DeviceInfo
    alias: str | None
    base_identity: str
    settings: EncoderSettings
