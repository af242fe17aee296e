"""Timezone-aware clock utilities.

All timestamps in chat2campaign are UTC-aware.  This module is the single
source of "now" so tests can monkey-patch it trivially.

Wire timestamps use the canonical millisecond form ``YYYY-MM-DDTHH:MM:SS.mmmZ``.
A string only counts as a valid wire timestamp if parsing and re-formatting
it reproduces the exact same string.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format *dt* as a canonical UTC timestamp with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def iso_now() -> str:
    return to_iso(utc_now())


def parse_iso(value: str) -> datetime:
    """Parse an ISO8601 string; naive values are treated as UTC.

    Raises:
        ValueError: If *value* is not an ISO8601 timestamp.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_canonical_iso(value: Any) -> bool:
    """True if *value* is a string that round-trips through to_iso unchanged."""
    if not isinstance(value, str) or not value:
        return False
    try:
        return to_iso(parse_iso(value)) == value
    except (ValueError, OverflowError):
        return False
