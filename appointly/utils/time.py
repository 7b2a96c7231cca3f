"""Time helpers with timezone-aware UTC defaults."""

from __future__ import annotations

from datetime import UTC, datetime, time


def utc_now() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(UTC)


def local_now() -> datetime:
    """Naive wall-clock datetime; appointment dates and times are stored naive."""
    return datetime.now()


def format_hhmm(value: time | datetime) -> str:
    return value.strftime("%H:%M")
