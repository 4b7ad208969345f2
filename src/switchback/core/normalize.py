"""Normalization helpers for switch configuration texts."""

from __future__ import annotations

import re

HEADER_LINES = 5


def _normalize_line_endings(text: str) -> str:
    """Convert CRLF/CR line endings to LF for consistent processing."""

    return text.replace("\r\n", "\n").replace("\r", "\n")


def _trim_trailing_blank_lines(lines: list[str]) -> list[str]:
    """Remove trailing empty lines while preserving internal spacing."""

    while lines and not lines[-1].strip():
        lines.pop()
    return lines


_VOLATILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^!\s+Last configuration change.*", re.IGNORECASE),
    re.compile(r"^!\s+NVRAM config last updated.*", re.IGNORECASE),
    re.compile(r"^!\s+Time:.*", re.IGNORECASE),
    re.compile(r"^!\s+.*uptime is.*", re.IGNORECASE),
    re.compile(r"^Current configuration : \d+ bytes", re.IGNORECASE),
    re.compile(r"^\s*ntp clock-period \d+", re.IGNORECASE),
)


def is_volatile_line(line: str) -> bool:
    return any(pattern.match(line) for pattern in _VOLATILE_PATTERNS)


def strip_header(text: str, count: int = HEADER_LINES) -> str:
    """Drop the banner lines a switch prepends to every transferred config."""

    lines = _normalize_line_endings(text).split("\n")
    return "\n".join(lines[count:])


def normalize_config(text: str) -> str:
    """Normalize switch configuration text.

    Removes volatile lines (clock drift counters, timestamps, size counters)
    and standardizes line endings while keeping configuration commands intact.
    Applying it twice gives the same result as applying it once.
    """

    normalized = _normalize_line_endings(text)
    filtered = [line for line in normalized.split("\n") if not is_volatile_line(line)]
    trimmed = _trim_trailing_blank_lines(filtered)
    return "\n".join(trimmed)


def normalized_body(text: str) -> str:
    """Header-less, normalized text used for comparisons."""

    return normalize_config(strip_header(text))
