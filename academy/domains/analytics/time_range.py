# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reporting windows for analytics."""

from datetime import datetime, timedelta
from enum import Enum

from academy.core.exceptions import ValidationError


class TimeRange(str, Enum):
    """Fixed reporting windows ending at the current time."""

    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"

    @classmethod
    def parse(cls, value: "str | TimeRange") -> "TimeRange":
        """Convert a raw value to a TimeRange.

        Raises:
            ValidationError: If the value is not a known range.
        """
        try:
            return cls(value)
        except ValueError as e:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError(
                f"Invalid time range: {value}",
                details={"allowed": allowed},
            ) from e

    @property
    def delta(self) -> timedelta:
        return _DELTAS[self]

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """Return the [start, end] bounds of the window ending at now."""
        return now - self.delta, now


_DELTAS = {
    TimeRange.LAST_24_HOURS: timedelta(hours=24),
    TimeRange.LAST_7_DAYS: timedelta(days=7),
    TimeRange.LAST_30_DAYS: timedelta(days=30),
    TimeRange.LAST_90_DAYS: timedelta(days=90),
    TimeRange.LAST_YEAR: timedelta(days=365),
}
