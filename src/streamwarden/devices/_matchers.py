"""Per-device encoder settings resolution.

Overrides from the ``devices`` configuration section are tried as an ordered
chain: exact device name, then alias, then glob pattern. The first matching
override is applied on top of the ``encoder`` defaults; a device no override
matches uses the defaults unchanged.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, final, runtime_checkable

from ._models import DeviceMapping, EncoderSettings
from ._naming import base_identity, resolve_alias

if TYPE_CHECKING:
    from collections.abc import Sequence

    from streamwarden.config import DeviceOverride, DevicesConfig, EncoderConfig

    from ._models import DeviceInfo


@runtime_checkable
class DeviceMatcher(Protocol):
    """A single strategy in the settings chain."""

    @property
    def kind(self) -> str:
        """Return the matcher's name as reported in mappings."""
        ...

    @property
    def override(self) -> DeviceOverride:
        """Return the override applied when the matcher matches."""
        ...

    def matches(self, device: DeviceInfo, alias: str | None) -> bool:
        """Return whether this matcher selects ``device``."""
        ...


@dataclass(frozen=True, slots=True)
class ExactNameMatcher:
    override: DeviceOverride
    kind: str = "exact"

    def matches(self, device: DeviceInfo, alias: str | None) -> bool:
        del alias
        return self.override.name in (device.name, device.card_id)


@dataclass(frozen=True, slots=True)
class AliasMatcher:
    override: DeviceOverride
    kind: str = "alias"

    def matches(self, device: DeviceInfo, alias: str | None) -> bool:
        del device
        return alias is not None and alias == self.override.alias


@dataclass(frozen=True, slots=True)
class PatternMatcher:
    override: DeviceOverride
    kind: str = "pattern"

    def matches(self, device: DeviceInfo, alias: str | None) -> bool:
        del alias
        pattern = self.override.pattern or ""
        return fnmatch.fnmatchcase(device.name, pattern) or (
            bool(device.card_id) and fnmatch.fnmatchcase(device.card_id, pattern)
        )


def build_matchers(overrides: Sequence[DeviceOverride]) -> list[DeviceMatcher]:
    """Order overrides into the exact, alias, pattern chain.

    Within one kind, configuration order is kept.
    """
    exact: list[DeviceMatcher] = [ExactNameMatcher(o) for o in overrides if o.name]
    alias: list[DeviceMatcher] = [AliasMatcher(o) for o in overrides if o.alias]
    pattern: list[DeviceMatcher] = [
        PatternMatcher(o) for o in overrides if o.pattern
    ]
    return [*exact, *alias, *pattern]


@final
class SettingsResolver:
    """Resolves the encoder settings of each device."""

    __slots__ = ("_aliases", "_defaults", "_matchers")

    def __init__(self, encoder: EncoderConfig, devices: DevicesConfig) -> None:
        self._defaults = encoder
        self._aliases = devices.aliases
        self._matchers = build_matchers(devices.overrides)

    @property
    def matchers(self) -> list[DeviceMatcher]:
        return list(self._matchers)

    def resolve(self, device: DeviceInfo) -> EncoderSettings:
        alias = resolve_alias(device, self._aliases)
        for matcher in self._matchers:
            if matcher.matches(device, alias):
                return self._apply(matcher.override, matcher.kind)
        return self._apply(None, "default")

    def _apply(self, override: DeviceOverride | None, kind: str) -> EncoderSettings:
        defaults = self._defaults
        if override is None:
            return EncoderSettings(
                sample_rate=defaults.sample_rate,
                channels=defaults.channels,
                codec=defaults.codec,
                bitrate=defaults.bitrate,
                thread_queue_size=defaults.thread_queue_size,
                analyze_duration=defaults.analyze_duration,
                probe_size=defaults.probe_size,
                matched_by=kind,
            )
        return EncoderSettings(
            sample_rate=override.sample_rate or defaults.sample_rate,
            channels=override.channels or defaults.channels,
            codec=override.codec or defaults.codec,
            bitrate=override.bitrate or defaults.bitrate,
            thread_queue_size=defaults.thread_queue_size,
            analyze_duration=defaults.analyze_duration,
            probe_size=defaults.probe_size,
            matched_by=kind,
        )


def build_mappings(
    devices: Sequence[DeviceInfo],
    encoder: EncoderConfig,
    config: DevicesConfig,
) -> list[DeviceMapping]:
    """Pair every device with its alias, base identity and encoder settings."""
    resolver = SettingsResolver(encoder, config)
    return [
        DeviceMapping(
            device=device,
            alias=resolve_alias(device, config.aliases),
            base_identity=base_identity(device, config.aliases),
            settings=resolver.resolve(device),
        )
        for device in devices
    ]
