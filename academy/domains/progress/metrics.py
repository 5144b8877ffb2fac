# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pure progress calculations.

Every function here is side-effect free apart from apply_derived_fields and
update_streak, which only write to the Progress instance they are given.
ProgressService calls apply_derived_fields before every save so the derived
columns always agree with the counters.

Example:
    >>> percentage(3, 4)
    75.0
    >>> overall_progress(100.0, 50.0, 0.0)
    50.0
"""

from datetime import datetime
from enum import Enum
from typing import Any

from academy.infrastructure.database.models import Progress
from academy.utils.datetime import calendar_days_between, ensure_utc, format_iso

MATERIAL_WEIGHT = 0.4
ATTENDANCE_WEIGHT = 0.2
ASSIGNMENT_WEIGHT = 0.4

INACTIVE_AFTER_DAYS = 7
NEVER_ACTIVE_DAYS = 999


class RiskSeverity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class RiskFactor(str, Enum):
    LOW_ATTENDANCE = "low_attendance"
    LOW_MATERIAL_COMPLETION = "low_material_completion"
    LOW_ASSIGNMENT_SUBMISSION = "low_assignment_submission"
    INACTIVE = "inactive"


# (factor, field, medium below, high below)
_THRESHOLD_RULES: tuple[tuple[RiskFactor, str, float, float], ...] = (
    (RiskFactor.LOW_ATTENDANCE, "attendance_percentage", 70.0, 50.0),
    (RiskFactor.LOW_MATERIAL_COMPLETION, "material_completion_percentage", 60.0, 40.0),
    (RiskFactor.LOW_ASSIGNMENT_SUBMISSION, "assignment_completion_percentage", 50.0, 30.0),
)


def percentage(completed: int, total: int) -> float:
    """Share of completed items as a 0-100 value, 0 when there are none."""
    if total <= 0:
        return 0.0
    return completed / total * 100


def overall_progress(material: float, attendance: float, assignment: float) -> float:
    """Weighted overall progress."""
    return (
        material * MATERIAL_WEIGHT
        + attendance * ATTENDANCE_WEIGHT
        + assignment * ASSIGNMENT_WEIGHT
    )


def days_since(last_active: datetime | None, now: datetime) -> int:
    """Whole days elapsed since the last activity."""
    if last_active is None:
        return NEVER_ACTIVE_DAYS
    return (now - ensure_utc(last_active)).days  # type: ignore[operator]


def assess_risk(progress: Progress, now: datetime) -> list[dict[str, Any]]:
    """Evaluate every risk rule against the record's current values.

    Rules are independent; each one that trips adds a factor with its
    severity.

    Args:
        progress: Record with up-to-date percentages and last_active.
        now: Assessment time, stored as detected_at.

    Returns:
        List of {factor, severity, detected_at} dictionaries.
    """
    detected_at = format_iso(now)
    factors: list[dict[str, Any]] = []

    for factor, field_name, medium_below, high_below in _THRESHOLD_RULES:
        value = getattr(progress, field_name) or 0.0
        if value < medium_below:
            severity = RiskSeverity.HIGH if value < high_below else RiskSeverity.MEDIUM
            factors.append(
                {"factor": factor.value, "severity": severity.value, "detected_at": detected_at}
            )

    if days_since(progress.last_active, now) > INACTIVE_AFTER_DAYS:
        factors.append(
            {
                "factor": RiskFactor.INACTIVE.value,
                "severity": RiskSeverity.HIGH.value,
                "detected_at": detected_at,
            }
        )

    return factors


def update_streak(progress: Progress, now: datetime) -> None:
    """Advance the activity streak and stamp last_active.

    Same UTC day leaves the streak unchanged, the next day extends it and
    any longer gap restarts it at 1.
    """
    if progress.last_active is None:
        progress.current_streak = 1
    else:
        gap = calendar_days_between(progress.last_active, now)
        if gap == 1:
            progress.current_streak = (progress.current_streak or 0) + 1
        elif gap > 1:
            progress.current_streak = 1
        elif not progress.current_streak:
            progress.current_streak = 1

    progress.longest_streak = max(progress.longest_streak or 0, progress.current_streak)
    progress.streak_updated_at = now
    progress.last_active = now


def apply_derived_fields(progress: Progress, now: datetime) -> Progress:
    """Recompute percentages, overall progress and risk from the counters."""
    progress.material_completion_percentage = percentage(
        progress.completed_materials, progress.total_materials
    )
    progress.attendance_percentage = percentage(progress.attended_sessions, progress.total_sessions)
    progress.assignment_completion_percentage = percentage(
        progress.submitted_assignments, progress.total_assignments
    )
    progress.overall_progress = overall_progress(
        progress.material_completion_percentage,
        progress.attendance_percentage,
        progress.assignment_completion_percentage,
    )

    progress.risk_factors = assess_risk(progress, now)
    progress.is_at_risk = bool(progress.risk_factors)
    progress.last_risk_assessment = now
    return progress


def risk_factor_names(progress: Progress) -> set[str]:
    return {item["factor"] for item in progress.risk_factors or []}
