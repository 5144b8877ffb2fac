# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics domain.

Exports:
    AnalyticsCalculator: Cached system, batch, course, payment and
        engagement reports.
    TimeRange: Supported reporting windows.
"""

from academy.domains.analytics.calculator import AnalyticsCalculator
from academy.domains.analytics.time_range import TimeRange

__all__ = [
    "AnalyticsCalculator",
    "TimeRange",
]
