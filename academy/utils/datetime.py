# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Academy.

All timestamps are stored in UTC and every Python datetime handled by the
services is timezone-aware. Values loaded from backends that drop the
offset (SQLite) are normalised by ``ensure_utc``.

Usage:
    from academy.utils.datetime import utc_now

    now = utc_now()
    expires_at = utc_now() + timedelta(days=7)
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: float) -> datetime:
    """Create a timezone-aware UTC datetime from a Unix timestamp.

    Args:
        timestamp: Unix timestamp (seconds since epoch).

    Returns:
        Timezone-aware UTC datetime.
    """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None. Naive values are assumed UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def calendar_days_between(earlier: datetime, later: datetime) -> int:
    """Count UTC calendar-day boundaries between two instants.

    Two instants on the same UTC day are 0 days apart; 23:59 and 00:01 of
    the following day are 1 day apart.

    Args:
        earlier: Start instant.
        later: End instant.

    Returns:
        Whole calendar days from earlier to later (negative if reversed).
    """
    start: date = ensure_utc(earlier).date()  # type: ignore[union-attr]
    end: date = ensure_utc(later).date()  # type: ignore[union-attr]
    return (end - start).days


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string in UTC.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()  # type: ignore[union-attr]
