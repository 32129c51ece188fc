"""Capture device discovery, naming and per-device encoder settings."""

from ._detect import DeviceCatalog
from ._matchers import (
    AliasMatcher,
    DeviceMatcher,
    ExactNameMatcher,
    PatternMatcher,
    SettingsResolver,
    build_mappings,
    build_matchers,
)
from ._models import DeviceInfo, DeviceMapping, DeviceSource, EncoderSettings
from ._naming import (
    MAX_IDENTITY_LENGTH,
    base_identity,
    finalize_identity,
    resolve_alias,
    sanitize_name,
)

__all__ = [
    "MAX_IDENTITY_LENGTH",
    "AliasMatcher",
    "DeviceCatalog",
    "DeviceInfo",
    "DeviceMapping",
    "DeviceMatcher",
    "DeviceSource",
    "EncoderSettings",
    "ExactNameMatcher",
    "PatternMatcher",
    "SettingsResolver",
    "base_identity",
    "build_mappings",
    "build_matchers",
    "finalize_identity",
    "resolve_alias",
    "sanitize_name",
]
