"""
Shared utility functions for JobWatch.

Timestamp conversion and formatting helpers used when building alert
content and when keying throttle state by epoch milliseconds.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"

_RICH_UNITS: tuple[tuple[str, int], ...] = (
    ("d", 86400),
    ("h", 3600),
    ("m", 60),
    ("s", 1),
)


def utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive *value*; aware values are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_ms(value: datetime) -> int:
    """Convert *value* to integer milliseconds since the Unix epoch."""
    return int(ensure_utc(value).timestamp() * 1000)


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Return a ``ZoneInfo`` for *name*, or ``None`` (local time) when empty.

    Raises:
        zoneinfo.ZoneInfoNotFoundError: If *name* is not a known zone.
    """
    if not name:
        return None
    return ZoneInfo(name)


def format_timestamp(value: datetime, tz: tzinfo | None = None) -> str:
    """Render *value* as ``YYYY-mm-dd HH:MM:SS`` in *tz* (local when ``None``)."""
    return ensure_utc(value).astimezone(tz).strftime(DISPLAY_FORMAT)


def rich_duration(total_seconds: int, *, smallest: str = "s") -> str:
    """Render a second count as ``1d 2h 3m 4s``.

    Components below *smallest* (``"m"`` drops seconds) are omitted and
    zero components are skipped.

    Examples:
        >>> rich_duration(90)
        '1m 30s'
        >>> rich_duration(7500, smallest="m")
        '2h 5m'
    """
    parts: list[str] = []
    remaining = max(total_seconds, 0)
    for suffix, size in _RICH_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{suffix}")
        if suffix == smallest:
            break
    return " ".join(parts) or f"0{smallest}"
