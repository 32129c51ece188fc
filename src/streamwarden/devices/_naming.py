"""Stream identity naming.

The base identity of a device is, in order of preference: its configured
alias, its ALSA card id when that is already a clean lowercase name, or a
sanitized form of its device name.
"""

import re
from collections.abc import Mapping

from ._models import DeviceInfo

MAX_IDENTITY_LENGTH = 64

_CARD_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,31}$")
_IDENTITY_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_STRIP_PREFIXES = ("usb-audio-", "usb_audio_")


def sanitize_name(name: str) -> str:
    """Reduce a device name to lowercase alphanumerics and single underscores.

    >>> sanitize_name("usb-audio-Blue_Yeti--Pro")
    'blue_yeti_pro'
    """
    for prefix in _STRIP_PREFIXES:
        name = name.removeprefix(prefix)
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


def finalize_identity(candidate: str) -> str:
    """Make ``candidate`` a valid stream identity.

    Identities must start with a letter and contain only letters, digits,
    ``_`` and ``-``; anything else is prefixed with ``stream_``. The result
    is truncated to 64 characters.
    """
    if not _IDENTITY_PATTERN.fullmatch(candidate):
        candidate = f"stream_{candidate}"
    return candidate[:MAX_IDENTITY_LENGTH]


def resolve_alias(device: DeviceInfo, aliases: Mapping[str, str]) -> str | None:
    """Return the configured alias for ``device``, if any.

    Aliases are keyed by device name, with the ALSA card id accepted as a
    shorter key.
    """
    alias = aliases.get(device.name)
    if alias is None and device.card_id:
        alias = aliases.get(device.card_id)
    return alias or None


def base_identity(device: DeviceInfo, aliases: Mapping[str, str]) -> str:
    """Return the base stream identity for ``device``."""
    alias = resolve_alias(device, aliases)
    if alias and not _IDENTITY_PATTERN.fullmatch(alias):
        alias = _NON_ALNUM.sub("_", alias.lower()).strip("_")
    if alias:
        return finalize_identity(alias)

    if _CARD_ID_PATTERN.fullmatch(device.card_id):
        return finalize_identity(device.card_id)

    sanitized = sanitize_name(device.name)
    if not sanitized:
        sanitized = f"card{device.card}"
    return finalize_identity(sanitized)
