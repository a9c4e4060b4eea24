"""Utility helpers shared across modules."""

from __future__ import annotations

import re
from datetime import UTC, datetime

PORTAL_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]+')


def parse_portal_datetime(value: str | None) -> datetime | None:
    """Convert portal ISO strings (with trailing Z) into aware UTC datetimes."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant.

    Naive values are taken as local time, the way the portal's users enter them.
    """
    return dt.astimezone(UTC)


def isoformat_utc(dt: datetime) -> str:
    """Return the second-precision `Z` form the portal query accepts."""
    return ensure_utc(dt).strftime(PORTAL_DATETIME_FORMAT)


def format_file_size(size: int) -> str:
    """Human-readable size: `1 KB`, `3 MB`."""
    value = float(size)
    units = ["B", "KB", "MB", "GB"]
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:,.0f} {units[index]}"


def safe_file_name(text: str, limit: int = 64) -> str:
    """Collapse whitespace, replace characters invalid in file names, trim to limit."""
    words = " ".join(text.split())
    parts = [part.strip() for part in _INVALID_NAME_CHARS.split(words) if part.strip()]
    name = "-".join(parts)
    if len(name) > limit:
        name = name[:limit].strip()
    return name


def strip_suffix(name: str, suffix: str) -> str:
    """Drop a case-insensitive suffix such as `.enc` or `.sig` when present."""
    if name.lower().endswith(suffix):
        return name[: -len(suffix)]
    return name
