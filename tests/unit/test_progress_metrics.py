# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for pure progress calculations."""

from datetime import datetime, timedelta, timezone

import pytest

from academy.domains.progress.metrics import (
    NEVER_ACTIVE_DAYS,
    apply_derived_fields,
    assess_risk,
    days_since,
    overall_progress,
    percentage,
    risk_factor_names,
    update_streak,
)
from academy.infrastructure.database.models import Progress

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _progress(**values) -> Progress:
    progress = Progress.new("student-1", "batch-1", "course-1")
    for key, value in values.items():
        setattr(progress, key, value)
    return progress


class TestPercentages:
    """Tests for percentage helpers."""

    def test_percentage(self) -> None:
        assert percentage(3, 4) == 75.0

    def test_percentage_with_no_items_is_zero(self) -> None:
        assert percentage(0, 0) == 0.0

    def test_overall_progress_weights(self) -> None:
        """Test that materials and assignments weigh twice attendance."""
        assert overall_progress(100.0, 0.0, 0.0) == pytest.approx(40.0)
        assert overall_progress(0.0, 100.0, 0.0) == pytest.approx(20.0)
        assert overall_progress(0.0, 0.0, 100.0) == pytest.approx(40.0)
        assert overall_progress(80.0, 90.0, 70.0) == pytest.approx(78.0)


class TestDaysSince:
    def test_never_active(self) -> None:
        assert days_since(None, NOW) == NEVER_ACTIVE_DAYS

    def test_whole_days(self) -> None:
        assert days_since(NOW - timedelta(days=3, hours=5), NOW) == 3


class TestAssessRisk:
    """Tests for risk rules."""

    def test_healthy_student_has_no_risk(self) -> None:
        progress = _progress(
            attendance_percentage=90.0,
            material_completion_percentage=80.0,
            assignment_completion_percentage=75.0,
            last_active=NOW - timedelta(days=1),
        )

        assert assess_risk(progress, NOW) == []

    @pytest.mark.parametrize(
        ("value", "severity"),
        [(69.9, "medium"), (50.0, "medium"), (49.9, "high"), (70.0, None)],
    )
    def test_attendance_thresholds(self, value: float, severity: str | None) -> None:
        """Test that attendance is medium below 70 and high below 50."""
        progress = _progress(
            attendance_percentage=value,
            material_completion_percentage=100.0,
            assignment_completion_percentage=100.0,
            last_active=NOW,
        )

        factors = assess_risk(progress, NOW)

        if severity is None:
            assert factors == []
        else:
            assert factors == [
                {"factor": "low_attendance", "severity": severity, "detected_at": NOW.isoformat()}
            ]

    def test_material_and_assignment_thresholds(self) -> None:
        """Test that material and assignment rules use their own limits."""
        progress = _progress(
            attendance_percentage=100.0,
            material_completion_percentage=45.0,
            assignment_completion_percentage=29.0,
            last_active=NOW,
        )

        factors = {f["factor"]: f["severity"] for f in assess_risk(progress, NOW)}

        assert factors == {"low_material_completion": "medium", "low_assignment_submission": "high"}

    def test_inactivity_is_high_risk(self) -> None:
        """Test that more than a week of inactivity is flagged."""
        progress = _progress(
            attendance_percentage=100.0,
            material_completion_percentage=100.0,
            assignment_completion_percentage=100.0,
            last_active=NOW - timedelta(days=8),
        )

        assert assess_risk(progress, NOW)[0]["factor"] == "inactive"
        assert assess_risk(progress, NOW)[0]["severity"] == "high"

    def test_exactly_seven_days_is_not_inactive(self) -> None:
        progress = _progress(
            attendance_percentage=100.0,
            material_completion_percentage=100.0,
            assignment_completion_percentage=100.0,
            last_active=NOW - timedelta(days=7),
        )

        assert assess_risk(progress, NOW) == []


class TestUpdateStreak:
    """Tests for activity streaks."""

    def test_first_activity_starts_streak(self) -> None:
        progress = _progress()

        update_streak(progress, NOW)

        assert progress.current_streak == 1
        assert progress.longest_streak == 1
        assert progress.last_active == NOW

    def test_same_day_keeps_streak(self) -> None:
        progress = _progress(current_streak=4, longest_streak=4, last_active=NOW.replace(hour=1))

        update_streak(progress, NOW)

        assert progress.current_streak == 4

    def test_next_day_extends_streak(self) -> None:
        """Test that activity on the following calendar day counts."""
        progress = _progress(
            current_streak=4,
            longest_streak=4,
            last_active=(NOW - timedelta(days=1)).replace(hour=23),
        )

        update_streak(progress, NOW)

        assert progress.current_streak == 5
        assert progress.longest_streak == 5

    def test_gap_resets_streak_but_keeps_longest(self) -> None:
        progress = _progress(current_streak=6, longest_streak=9, last_active=NOW - timedelta(days=3))

        update_streak(progress, NOW)

        assert progress.current_streak == 1
        assert progress.longest_streak == 9
        assert progress.streak_updated_at == NOW


class TestApplyDerivedFields:
    """Tests for recomputing derived columns."""

    def test_derived_fields_follow_counters(self) -> None:
        progress = _progress(
            total_materials=10,
            completed_materials=8,
            total_sessions=10,
            attended_sessions=9,
            total_assignments=10,
            submitted_assignments=7,
            last_active=NOW,
        )

        apply_derived_fields(progress, NOW)

        assert progress.material_completion_percentage == pytest.approx(80.0)
        assert progress.attendance_percentage == pytest.approx(90.0)
        assert progress.assignment_completion_percentage == pytest.approx(70.0)
        assert progress.overall_progress == pytest.approx(78.0)
        assert progress.is_at_risk is False
        assert progress.last_risk_assessment == NOW

    def test_empty_batch_flags_every_rule(self) -> None:
        """Test that a brand new record with no activity is at risk."""
        progress = _progress()

        apply_derived_fields(progress, NOW)

        assert progress.is_at_risk is True
        assert risk_factor_names(progress) == {
            "low_attendance",
            "low_material_completion",
            "low_assignment_submission",
            "inactive",
        }
