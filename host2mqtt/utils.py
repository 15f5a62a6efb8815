"""
Shared helpers for parsing and topic naming

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_float)
- Command payloads: strict boolean literals and bounded percentages
- Topic naming: hostname sanitizing for topic segments and entity ids
- Formatting: human readable uptime
"""

from __future__ import annotations

import re

_TOPIC_UNSAFE = (" ", "/", "+", "#")

_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_INTEGER_RE = re.compile(r"-?[0-9]+")


def sanitize_topic_segment(value: str) -> str:
    """Strip characters that are not allowed inside a single MQTT topic level."""
    for char in _TOPIC_UNSAFE:
        value = value.replace(char, "")
    return value


def sanitize_hostname_for_entity_id(hostname: str) -> str:
    """Convert hostnames to Home Assistant safe entity IDs."""
    return sanitize_topic_segment(hostname).lower().replace("-", "_").replace(".", "_")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_bool_literal(value: str) -> bool:
    """Parse a command payload boolean.

    Only the exact literals ``1 t T TRUE true True`` and ``0 f F FALSE false False``
    are accepted; anything else raises ``ValueError``.
    """
    if value in _TRUE_LITERALS:
        return True
    if value in _FALSE_LITERALS:
        return False
    raise ValueError(f"invalid boolean literal: {value!r}")


def parse_percent(value: str) -> int:
    """Parse an integer in the inclusive range 0..100, raising ``ValueError`` otherwise.

    Only an optional minus sign and ASCII digits are accepted: no whitespace,
    no plus sign, no underscores and no non-ASCII digits.
    """
    if not _INTEGER_RE.fullmatch(value):
        raise ValueError(f"not an integer: {value!r}")
    number = int(value)
    if number < 0 or number > 100:
        raise ValueError(f"value out of range 0..100: {number}")
    return number


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def format_uptime(seconds: int) -> str:
    """Render uptime as ``"N days, H:MM"`` or ``"H:MM"`` when under a day."""
    days, remainder = divmod(max(0, int(seconds)), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days > 0:
        return f"{days} days, {hours}:{minutes:02d}"
    return f"{hours}:{minutes:02d}"
