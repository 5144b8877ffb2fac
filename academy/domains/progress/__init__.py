# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress domain.

Exports:
    ProgressService: Progress calculation and dashboards.
    NotEnrolledError: Raised for students without an active enrollment.
    metrics: Pure percentage, risk and streak functions.
"""

from academy.domains.progress import metrics
from academy.domains.progress.service import (
    AtRiskStudent,
    BatchCalculationResult,
    BatchDashboard,
    NotEnrolledError,
    ProgressService,
    StudentDashboard,
)

__all__ = [
    "metrics",
    "ProgressService",
    "NotEnrolledError",
    "BatchDashboard",
    "AtRiskStudent",
    "StudentDashboard",
    "BatchCalculationResult",
]
