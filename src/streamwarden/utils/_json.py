from __future__ import annotations

from typing import TYPE_CHECKING, cast

import orjson

if TYPE_CHECKING:
    from pathlib import Path


def load_json(json_str: str | bytes) -> dict[str, object] | list[object] | None:
    """Load and parse a JSON string.

    Args:
        json_str: The JSON string to parse.

    Returns:
        The parsed JSON data as a dictionary or list, or None if parsing fails.
    """
    try:
        return cast("dict[str, object] | list[object]", orjson.loads(json_str))
    except orjson.JSONDecodeError:
        return None


def load_json_file(file_path: Path) -> dict[str, object] | list[object] | None:
    """Load and parse a JSON file, returning None if it cannot be read."""
    try:
        return load_json(file_path.read_bytes())
    except OSError:
        return None


def dump_json(data: object, *, indent: bool = False) -> str:
    """Serialize data to a JSON string.

    Non-native values (paths, enums subclasses of str, dataclasses) are
    handled by orjson; anything else falls back to ``str``.
    """
    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options, default=str).decode("utf-8")
