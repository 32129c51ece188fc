# pyright: reportAny=false
"""Unit tests for configuration section models.

These tests focus on our design decisions (defaults, constraints, enum
ordering) rather than pydantic behavior.
"""

import pytest
from pydantic import ValidationError

from streamwarden.config import (
    Codec,
    ConfigSourceName,
    DeviceOverride,
    EncoderConfig,
    RelayConfig,
)


class TestConfigSourceName:
    def test_precedence_order_highest_to_lowest(self) -> None:
        assert list(ConfigSourceName) == [
            ConfigSourceName.CLI,
            ConfigSourceName.ENV,
            ConfigSourceName.FILE,
            ConfigSourceName.USER,
            ConfigSourceName.SYSTEM,
            ConfigSourceName.DEFAULT,
        ]


class TestRelayConfig:
    def test_urls(self) -> None:
        relay = RelayConfig(host="10.0.0.5", rtsp_port=8555, api_port=9000)

        assert relay.api_url == "http://10.0.0.5:9000"
        assert relay.stream_url("usb_blue_yeti_00") == (
            "rtsp://10.0.0.5:8555/usb_blue_yeti_00"
        )
        assert relay.ports == (8555, 9000, 9998)

    @pytest.mark.parametrize("port", [0, 65536])
    def test_rejects_out_of_range_port(self, port: int) -> None:
        with pytest.raises(ValidationError):
            _ = RelayConfig(rtsp_port=port)


class TestEncoderConfig:
    def test_defaults(self) -> None:
        encoder = EncoderConfig()

        assert encoder.codec is Codec.OPUS
        assert encoder.sample_rate == 48000
        assert encoder.bitrate == "128k"

    @pytest.mark.parametrize("bitrate", ["fast", "128kbps", ""])
    def test_rejects_malformed_bitrate(self, bitrate: str) -> None:
        with pytest.raises(ValidationError):
            _ = EncoderConfig(bitrate=bitrate)


class TestDeviceOverride:
    def test_single_selector(self) -> None:
        override = DeviceOverride(pattern="*Yeti*", channels=1)

        assert override.pattern == "*Yeti*"
        assert override.codec is None

    @pytest.mark.parametrize(
        "selectors",
        [{}, {"name": "usb-Blue_Yeti-00", "alias": "studio"}],
    )
    def test_requires_exactly_one_selector(self, selectors: dict[str, str]) -> None:
        with pytest.raises(ValidationError, match="exactly one of"):
            _ = DeviceOverride(**selectors)
