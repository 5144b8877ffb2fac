# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for ProgressService.

Each test builds a running batch with published content and checks the
aggregated progress records and dashboards.
"""

from dataclasses import dataclass
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from academy.domains.progress.metrics import risk_factor_names
from academy.domains.progress.service import NotEnrolledError, ProgressService
from academy.infrastructure.database.models import (
    Assignment,
    Batch,
    LearningMaterial,
    LiveSession,
    SessionAttendee,
    Submission,
    User,
)
from academy.utils.datetime import ensure_utc, utc_now


@dataclass
class BatchContent:
    materials: list[LearningMaterial]
    sessions: list[LiveSession]
    assignments: list[Assignment]


@pytest.fixture
def service(db: AsyncSession, clock) -> ProgressService:
    return ProgressService(db, clock=clock)


@pytest.fixture
async def content(db: AsyncSession, running_batch: Batch) -> BatchContent:
    """Four published materials, two held sessions and two assignments."""
    now = utc_now()
    batch = running_batch
    materials = [
        LearningMaterial(batch_id=batch.id, course_id=batch.course_id, title=f"Lesson {i}", is_published=True)
        for i in range(4)
    ]
    draft = LearningMaterial(batch_id=batch.id, course_id=batch.course_id, title="Draft", is_published=False)

    def _session(title: str, status: str, days_ago: int) -> LiveSession:
        start = now - timedelta(days=days_ago)
        return LiveSession(
            batch_id=batch.id,
            course_id=batch.course_id,
            instructor_id=batch.instructor_id,
            title=title,
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=1),
            status=status,
        )

    sessions = [_session("Week 1", "completed", 6), _session("Week 2", "completed", 2)]
    upcoming = _session("Week 3", "scheduled", -5)

    assignments = [
        Assignment(
            batch_id=batch.id,
            course_id=batch.course_id,
            title="Homework 1",
            max_marks=100,
            deadline=now - timedelta(days=1),
        ),
        Assignment(
            batch_id=batch.id,
            course_id=batch.course_id,
            title="Homework 2",
            max_marks=50,
            deadline=now + timedelta(days=3) - timedelta(hours=1),
        ),
    ]
    db.add_all([*materials, draft, *sessions, upcoming, *assignments])
    await db.commit()
    return BatchContent(materials=materials, sessions=sessions, assignments=assignments)


@pytest.fixture
async def student(make_user, make_enrollment, running_batch: Batch) -> User:
    user = await make_user(full_name="Ana Student")
    await make_enrollment(user, running_batch)
    return user


async def _attend(db: AsyncSession, session: LiveSession, student: User, minutes: int = 55) -> None:
    db.add(SessionAttendee(session_id=session.id, student_id=student.id, duration_minutes=minutes))
    await db.commit()


async def _submit(
    db: AsyncSession,
    assignment: Assignment,
    student: User,
    graded: bool = False,
    marks: float | None = None,
) -> None:
    db.add(
        Submission(
            assignment_id=assignment.id,
            batch_id=assignment.batch_id,
            course_id=assignment.course_id,
            student_id=student.id,
            is_graded=graded,
            status="graded" if graded else "submitted",
            marks_obtained=marks,
            percentage=(marks / assignment.max_marks * 100) if marks is not None else None,
        )
    )
    await db.commit()


class TestCalculate:
    """Tests for recalculating a single student."""

    async def test_calculate_aggregates_batch_content(
        self,
        service: ProgressService,
        db: AsyncSession,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that counts come from published, held content only."""
        await _attend(db, content.sessions[0], student)
        await _submit(db, content.assignments[0], student, graded=True, marks=80)

        progress = await service.calculate(student.id, running_batch.id)

        assert progress.total_materials == 4
        assert progress.completed_materials == 0
        assert progress.total_sessions == 2
        assert progress.attended_sessions == 1
        assert progress.total_assignments == 2
        assert progress.submitted_assignments == 1
        assert progress.graded_assignments == 1
        assert progress.average_score == pytest.approx(80.0)
        assert progress.attendance_percentage == pytest.approx(50.0)
        assert progress.overall_progress == pytest.approx(30.0)
        assert progress.current_streak == 1
        assert progress.is_at_risk is True

    async def test_attendance_row_uses_attendee_duration(
        self,
        service: ProgressService,
        db: AsyncSession,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        await _attend(db, content.sessions[1], student, minutes=42)

        progress = await service.calculate(student.id, running_batch.id)

        by_session = {item["session_id"]: item for item in progress.session_attendance}
        assert by_session[content.sessions[1].id] == {
            "session_id": content.sessions[1].id,
            "status": "present",
            "duration": 42,
        }
        assert by_session[content.sessions[0].id]["status"] == "absent"

    async def test_recalculation_keeps_material_statuses(
        self,
        service: ProgressService,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that manually tracked material progress survives a recalculation."""
        await service.update_material_progress(
            student.id, running_batch.id, content.materials[0].id, "completed", percent=100, time_spent=30
        )

        progress = await service.calculate(student.id, running_batch.id)

        assert progress.completed_materials == 1
        assert progress.total_time_spent == 30

    async def test_submitted_but_ungraded_counts_as_submitted(
        self,
        service: ProgressService,
        db: AsyncSession,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        await _submit(db, content.assignments[1], student)

        progress = await service.calculate(student.id, running_batch.id)

        assert progress.submitted_assignments == 1
        assert progress.graded_assignments == 0
        assert progress.average_score == 0.0

    async def test_calculate_requires_active_enrollment(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
    ) -> None:
        """Test that revoked access counts as not enrolled."""
        revoked = await make_user()
        await make_enrollment(revoked, running_batch, access_revoked=True)

        with pytest.raises(NotEnrolledError):
            await service.calculate(revoked.id, running_batch.id)

    async def test_same_day_recalculation_is_stable(
        self,
        service: ProgressService,
        db: AsyncSession,
        clock,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that a second calculation on the same day changes nothing."""
        clock.now = clock.now.replace(hour=1, minute=0, second=0, microsecond=0)
        await _attend(db, content.sessions[0], student)

        first = await service.calculate(student.id, running_batch.id)
        before = (
            first.material_completion_percentage,
            first.attendance_percentage,
            first.assignment_completion_percentage,
            first.overall_progress,
            risk_factor_names(first),
            first.current_streak,
        )
        clock.advance(hours=6)
        second = await service.calculate(student.id, running_batch.id)

        assert (
            second.material_completion_percentage,
            second.attendance_percentage,
            second.assignment_completion_percentage,
            second.overall_progress,
            risk_factor_names(second),
            second.current_streak,
        ) == before
        assert second.current_streak == 1

    @pytest.mark.parametrize(
        ("days_ago", "expected_streak"),
        [(1, 5), (3, 1)],
    )
    async def test_streak_follows_last_active(
        self,
        service: ProgressService,
        db: AsyncSession,
        clock,
        running_batch: Batch,
        content: BatchContent,
        student: User,
        days_ago: int,
        expected_streak: int,
    ) -> None:
        """Test that yesterday's activity extends the streak and a gap resets it."""
        progress = await service.calculate(student.id, running_batch.id)
        progress.last_active = clock.now - timedelta(days=days_ago)
        progress.current_streak = 4
        progress.longest_streak = 4
        await db.commit()

        progress = await service.calculate(student.id, running_batch.id)

        assert progress.current_streak == expected_streak
        assert progress.longest_streak == max(4, expected_streak)
        assert ensure_utc(progress.last_active) == clock.now


class TestManualTracking:
    """Tests for material progress and attendance updates."""

    async def test_completed_and_reviewed_materials_count(
        self,
        service: ProgressService,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that both completed and reviewed materials count as complete."""
        await service.calculate(student.id, running_batch.id)

        await service.update_material_progress(student.id, running_batch.id, content.materials[0].id, "completed")
        progress = await service.update_material_progress(
            student.id, running_batch.id, content.materials[1].id, "reviewed"
        )

        assert progress.completed_materials == 2
        assert progress.total_materials == 4
        assert progress.material_completion_percentage == pytest.approx(50.0)

    async def test_updating_same_material_replaces_entry(
        self,
        service: ProgressService,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        material_id = content.materials[0].id
        await service.update_material_progress(student.id, running_batch.id, material_id, "started", percent=40)
        progress = await service.update_material_progress(
            student.id, running_batch.id, material_id, "completed", percent=100
        )

        entries = [item for item in progress.material_progress if item["material_id"] == material_id]
        assert len(entries) == 1
        assert entries[0]["status"] == "completed"

    async def test_invalid_material_input_rejected(
        self, service: ProgressService, running_batch: Batch, student: User
    ) -> None:
        with pytest.raises(ValidationError):
            await service.update_material_progress(student.id, running_batch.id, "m1", "finished")
        with pytest.raises(ValidationError):
            await service.update_material_progress(student.id, running_batch.id, "m1", "started", percent=120)

    async def test_late_attendance_counts_as_attended(
        self,
        service: ProgressService,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        await service.calculate(student.id, running_batch.id)

        await service.record_session_attendance(student.id, running_batch.id, content.sessions[0].id, "present")
        progress = await service.record_session_attendance(
            student.id, running_batch.id, content.sessions[1].id, "late", duration=20
        )

        assert progress.attended_sessions == 2
        assert progress.attendance_percentage == pytest.approx(100.0)

    async def test_excused_is_not_attended(
        self,
        service: ProgressService,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        progress = await service.record_session_attendance(
            student.id, running_batch.id, content.sessions[0].id, "excused"
        )

        assert progress.attended_sessions == 0

    async def test_tracking_requires_enrollment(
        self, service: ProgressService, make_user, running_batch: Batch
    ) -> None:
        outsider = await make_user()

        with pytest.raises(NotEnrolledError):
            await service.record_session_attendance(outsider.id, running_batch.id, "s1", "present")


class TestBatchCalculation:
    """Tests for the system-triggered batch recalculation."""

    async def test_calculate_batch_skips_revoked_access(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
        student: User,
    ) -> None:
        revoked = await make_user()
        await make_enrollment(revoked, running_batch, access_revoked=True)
        batch_id = running_batch.id

        result = await service.calculate_batch(batch_id)

        assert result.succeeded == 1
        assert result.failed == 0
        assert result.to_dict()["batch_id"] == batch_id

    async def test_calculate_batch_counts_failures(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
        student: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that one failing student does not stop the batch run."""
        other = await make_user()
        await make_enrollment(other, running_batch)
        other_id = other.id
        calculate = service.calculate

        async def flaky_calculate(student_id: str, batch_id: str, record_activity: bool = True):
            if student_id == other_id:
                raise NotEnrolledError("Student not enrolled in this batch")
            return await calculate(student_id, batch_id, record_activity=record_activity)

        monkeypatch.setattr(service, "calculate", flaky_calculate)

        result = await service.calculate_batch(running_batch.id)

        assert result.succeeded == 1
        assert result.failed == 1
        assert result.errors[0]["student_id"] == other_id

    async def test_nightly_runs_do_not_count_as_activity(
        self,
        service: ProgressService,
        clock,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that repeated batch runs leave last_active and the streak alone."""
        progress = await service.calculate(student.id, running_batch.id)
        first_active = ensure_utc(progress.last_active)

        for _ in range(10):
            clock.advance(days=1)
            await service.calculate_batch(running_batch.id)

        assert progress.current_streak == 1
        assert ensure_utc(progress.last_active) == first_active
        assert "inactive" in risk_factor_names(progress)
        assert ensure_utc(progress.last_calculated) == clock.now


class TestBatchDashboard:
    """Tests for the instructor dashboard."""

    async def test_dashboard_ranks_students(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that students are ranked by overall progress, highest first."""
        laggard = await make_user(full_name="Ben Student")
        await make_enrollment(laggard, running_batch)
        for material in content.materials:
            await service.update_material_progress(student.id, running_batch.id, material.id, "completed")

        dashboard = await service.batch_dashboard(running_batch.id, instructor_id=running_batch.instructor_id)

        assert dashboard.total_students == 2
        assert [row.student_id for row in dashboard.student_progress] == [student.id, laggard.id]
        assert dashboard.top_performers[0].student_name == "Ana Student"
        assert dashboard.needs_attention[0].student_id == laggard.id
        assert dashboard.at_risk_percentage == pytest.approx(100.0)
        assert {stat.title for stat in dashboard.assignment_stats} == {"Homework 1", "Homework 2"}
        assert dashboard.to_dict()["batch_name"] == "Running Batch"

    async def test_assignment_stats_use_enrolled_students(
        self,
        service: ProgressService,
        db: AsyncSession,
        make_user,
        make_enrollment,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that submission rates are relative to active enrollments."""
        other = await make_user()
        await make_enrollment(other, running_batch)
        await _submit(db, content.assignments[0], student)

        dashboard = await service.batch_dashboard(running_batch.id)

        stats = {stat.title: stat for stat in dashboard.assignment_stats}
        assert stats["Homework 1"].submissions == 1
        assert stats["Homework 1"].submission_rate == pytest.approx(50.0)
        assert dashboard.assignment_stats[0].title == "Homework 2"

    async def test_dashboard_leaves_out_revoked_access(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that a revoked student without a progress record is skipped."""
        revoked = await make_user()
        await make_enrollment(revoked, running_batch, access_revoked=True)

        dashboard = await service.batch_dashboard(running_batch.id)

        assert dashboard.total_students == 1
        assert [row.student_id for row in dashboard.student_progress] == [student.id]
        assert all(stat.total_students == 1 for stat in dashboard.assignment_stats)

    async def test_lazy_calculation_is_not_activity(
        self, service: ProgressService, running_batch: Batch, student: User
    ) -> None:
        dashboard = await service.batch_dashboard(running_batch.id)

        row = dashboard.student_progress[0]
        assert row.last_active is None
        assert "inactive" in {item["factor"] for item in row.risk_factors}

    async def test_other_instructor_is_rejected(
        self, service: ProgressService, make_user, running_batch: Batch
    ) -> None:
        other = await make_user("instructor")

        with pytest.raises(AuthorizationError):
            await service.batch_dashboard(running_batch.id, instructor_id=other.id)

    async def test_unknown_batch(self, service: ProgressService) -> None:
        with pytest.raises(NotFoundError):
            await service.batch_dashboard("missing-batch")


class TestAtRiskStudents:
    """Tests for the at-risk listing."""

    async def test_students_below_threshold_lowest_first(
        self,
        service: ProgressService,
        make_user,
        make_enrollment,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        idle = await make_user()
        await make_enrollment(idle, running_batch)
        await service.calculate(idle.id, running_batch.id)
        for material in content.materials:
            await service.update_material_progress(student.id, running_batch.id, material.id, "completed")

        below_sixty = await service.at_risk_students(running_batch.id, threshold=60)
        below_ten = await service.at_risk_students(running_batch.id, threshold=10)

        assert [s.student_id for s in below_sixty] == [idle.id, student.id]
        assert [s.student_id for s in below_ten] == [idle.id]
        assert below_ten[0].days_inactive == 0

    async def test_threshold_out_of_range(self, service: ProgressService, running_batch: Batch) -> None:
        with pytest.raises(ValidationError):
            await service.at_risk_students(running_batch.id, threshold=150)


class TestStudentDashboard:
    async def test_dashboard_lists_batches_and_deadlines(
        self,
        service: ProgressService,
        db: AsyncSession,
        running_batch: Batch,
        content: BatchContent,
        student: User,
    ) -> None:
        """Test that the dashboard covers progress, activity and deadlines."""
        await _submit(db, content.assignments[0], student, graded=True, marks=90)

        dashboard = await service.student_dashboard(student.id)

        assert dashboard.overall_stats.total_batches == 1
        assert dashboard.overall_stats.batches_in_progress == 1
        assert dashboard.batch_progress[0].course_title == "Python Foundations"
        assert dashboard.recent_activity[0]["title"] == "Homework 1"
        assert [d["title"] for d in dashboard.upcoming_deadlines] == ["Homework 2"]
        assert dashboard.upcoming_deadlines[0]["days_left"] == 3
        assert dashboard.to_dict()["student_id"] == student.id

    async def test_dashboard_without_enrollments(self, service: ProgressService, make_user) -> None:
        user = await make_user()

        dashboard = await service.student_dashboard(user.id)

        assert dashboard.overall_stats.total_batches == 0
        assert dashboard.batch_progress == []
        assert dashboard.upcoming_deadlines == []

    async def test_dashboard_leaves_out_revoked_access(
        self,
        service: ProgressService,
        make_user,
        make_course,
        make_batch,
        make_enrollment,
        running_batch: Batch,
        student: User,
    ) -> None:
        instructor = await make_user("instructor")
        course = await make_course(title="Data Science")
        overdue = await make_batch(course, instructor, name="Overdue EMI Batch")
        await make_enrollment(student, overdue, access_revoked=True)

        dashboard = await service.student_dashboard(student.id)

        assert dashboard.overall_stats.total_batches == 1
        assert [b.batch_id for b in dashboard.batch_progress] == [running_batch.id]
