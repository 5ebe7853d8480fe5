"""Utilities for timestamp parsing/formatting and file-size normalization.

Parsing is best effort: helpers return None (or 0 for sizes) on bad input and
never raise, so callers decide whether a row is usable.
"""

from __future__ import annotations

from datetime import datetime, timezone

CSV_DT_FMT = "%Y-%m-%d %H:%M:%S"

_SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}


def parse_csv_millis(value: str | None) -> int | None:
    """Parse a CSV timestamp (UTC) or raw epoch milliseconds; None on failure."""
    if not value:
        return None
    text = value.strip()
    if text.isdigit():
        return int(text)
    try:
        dt = datetime.strptime(text, CSV_DT_FMT).replace(tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None
    return int(dt.timestamp() * 1000)


def format_millis(millis: int | None) -> str:
    """Format epoch milliseconds for CSV and console output; empty when None."""
    if millis is None:
        return ""
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime(CSV_DT_FMT)
    except (OverflowError, OSError, ValueError):
        return ""


def parse_size_bytes(value: str | None) -> int:
    """Parse raw bytes or a human-readable size like "1.44MB"; 0 on failure."""
    s = str(value or "").strip()
    try:
        if s.isdigit():
            return int(s)
        num_part = "".join(ch for ch in s if (ch.isdigit() or ch == "."))
        unit_part = "".join(ch for ch in s if ch.isalpha()).upper() or "B"
        factor = _SIZE_UNITS.get(unit_part, 1)
        return int(float(num_part) * factor)
    except (ValueError, TypeError):
        return 0
