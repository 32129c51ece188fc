"""USB capture device detection.

Devices are found through the ``/dev/snd/by-id`` symlinks that point at a
card's ``controlC<N>`` node, keeping only cards that have a
``/proc/asound/card<N>/usbid`` entry. Enumeration right after a hotplug is
flaky, so the scan is retried a few times before falling back to
``/proc/asound/cards``.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, final

from streamwarden.utils import CommandConfig, run_command

from ._models import DeviceInfo, DeviceSource

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

_CONTROL_PATTERN = re.compile(r"controlC(\d+)")
_CARD_LINE = re.compile(r"^\s*(\d+)\s+\[([^\]]+)\]\s*:\s*(.*)$")
_SAFE_CARD_CHARS = re.compile(r"[^a-z0-9-]")

DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.5


@final
class DeviceCatalog:
    """Enumerates USB capture devices."""

    __slots__ = (
        "_dev_root",
        "_logger",
        "_proc_root",
        "_retries",
        "_retry_delay",
        "_sleep",
    )

    def __init__(
        self,
        *,
        dev_root: Path = Path("/dev"),
        proc_root: Path = Path("/proc"),
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        logger: FilteringBoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._dev_root = dev_root
        self._proc_root = proc_root
        self._retries = max(retries, 1)
        self._retry_delay = retry_delay
        self._logger = logger
        self._sleep = sleep

    @property
    def dev_root(self) -> Path:
        return self._dev_root

    def detect(self) -> list[DeviceInfo]:
        """Return the attached USB capture devices ordered by card number."""
        cards = self._read_cards()
        devices: list[DeviceInfo] = []
        for attempt in range(self._retries):
            devices = self._scan_by_id(cards)
            if devices or attempt == self._retries - 1:
                break
            self._sleep(self._retry_delay)

        if not devices:
            devices = self._scan_cards(cards)
            if devices and self._logger is not None:
                self._logger.debug("devices_from_cards_fallback", count=len(devices))
        return sorted(devices, key=lambda d: d.card)

    def count(self) -> int:
        return len(self.detect())

    def _scan_by_id(self, cards: dict[int, tuple[str, str]]) -> list[DeviceInfo]:
        by_id = self._dev_root / "snd" / "by-id"
        try:
            entries = sorted(by_id.iterdir())
        except OSError:
            return []

        found: dict[int, DeviceInfo] = {}
        for entry in entries:
            if not entry.is_symlink() or "-event-" in entry.name:
                continue
            match = _CONTROL_PATTERN.search(entry.resolve().name)
            if match is None:
                continue
            card = int(match.group(1))
            usb_id = self._usb_id(card)
            if usb_id is None or card in found:
                continue
            card_id, description = cards.get(card, ("", ""))
            found[card] = DeviceInfo(
                name=entry.name,
                card=card,
                card_id=card_id,
                description=description,
                usb_id=usb_id,
                source=DeviceSource.BY_ID,
            )
        return list(found.values())

    def _scan_cards(self, cards: dict[int, tuple[str, str]]) -> list[DeviceInfo]:
        devices: list[DeviceInfo] = []
        for card, (card_id, description) in cards.items():
            usb_id = self._usb_id(card)
            if usb_id is None:
                continue
            safe = _SAFE_CARD_CHARS.sub("", card_id.lower().replace(" ", "-"))
            if not safe:
                continue
            devices.append(
                DeviceInfo(
                    name=f"usb-audio-{safe}",
                    card=card,
                    card_id=card_id,
                    description=description,
                    usb_id=usb_id,
                    source=DeviceSource.CARDS,
                )
            )
        return devices

    def _read_cards(self) -> dict[int, tuple[str, str]]:
        """Parse ``/proc/asound/cards`` into card number -> (id, description)."""
        try:
            text = (self._proc_root / "asound" / "cards").read_text()
        except OSError:
            return {}
        cards: dict[int, tuple[str, str]] = {}
        for line in text.splitlines():
            match = _CARD_LINE.match(line)
            if match is None:
                continue
            rest = match.group(3)
            description = rest.split(" - ", 1)[1] if " - " in rest else rest
            cards[int(match.group(1))] = (match.group(2).strip(), description.strip())
        return cards

    def _usb_id(self, card: int) -> str | None:
        path = self._proc_root / "asound" / f"card{card}" / "usbid"
        try:
            return path.read_text().strip()
        except OSError:
            return None

    def is_present(self, device: DeviceInfo) -> bool:
        """Return whether the device's capture node still exists."""
        return device.capture_node(self._dev_root).exists()

    def capture_test(
        self,
        device: DeviceInfo,
        *,
        timeout: float,
        sample_rate: int = 48000,
        channels: int = 2,
    ) -> bool:
        """Record one second from the device to check it is usable.

        Returns:
            True when ``arecord`` captured without error within ``timeout``.
        """
        if not self.is_present(device):
            return False
        result = run_command(
            CommandConfig(
                argv=(
                    "arecord",
                    "-q",
                    "-D",
                    device.alsa_input,
                    "-f",
                    "S16_LE",
                    "-r",
                    str(sample_rate),
                    "-c",
                    str(channels),
                    "-d",
                    "1",
                    "/dev/null",
                ),
                timeout=timeout,
            )
        )
        if not result.success and self._logger is not None:
            self._logger.warning(
                "device_test_failed",
                device=device.name,
                card=device.card,
                error=result.error or result.stderr.strip()[:200],
            )
        return result.success
