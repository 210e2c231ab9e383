"""Command line value parsing for verbosity and vmodule settings."""

from __future__ import annotations

import json
from typing import Iterable, Optional

from .config import VModuleItem

# Verbosity must also fit into a signed 32 bit integer.
_VERBOSITY_BITS = 31


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _parse_uint(text: str, bits: int) -> int:
    if not text or not text.isascii() or not text.isdigit():
        raise ValueError(f"strconv.ParseUint: parsing {_quote(text)}: invalid syntax")
    value = int(text)
    if value >= 1 << bits:
        raise ValueError(f"strconv.ParseUint: parsing {_quote(text)}: value out of range")
    return value


def parse_vmodule(value: str) -> list[VModuleItem]:
    """Parse a comma-separated list of ``pattern=N`` settings."""
    items = []
    for pattern in value.split(","):
        if not pattern:
            # Empty entries, e.g. from a trailing comma, are ignored.
            continue
        parts = pattern.split("=")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(f"{_quote(pattern)} does not have the pattern=N format")
        try:
            level = _parse_uint(parts[1], _VERBOSITY_BITS)
        except ValueError as exc:
            raise ValueError(f"parsing verbosity in {_quote(pattern)}: {exc}") from None
        items.append(VModuleItem(file_pattern=parts[0], verbosity=level))
    return items


def format_vmodule(items: Optional[Iterable[VModuleItem]]) -> str:
    """Return the ``pattern=N,...`` form of vmodule settings."""
    if items is None:
        return ""
    return ",".join(f"{item.file_pattern}={item.verbosity}" for item in items)


def parse_verbosity(value: str) -> int:
    """Parse a verbosity level, limited to what fits a signed 32 bit integer."""
    return _parse_uint(value, _VERBOSITY_BITS)


def format_verbosity(level: Optional[int]) -> str:
    """Return the textual form of a verbosity level; None counts as zero."""
    if level is None:
        return "0"
    return str(int(level))