# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress service module.

This module aggregates a student's materials, live session attendance and
assignment submissions in a batch into a single Progress record, and builds
the student and instructor dashboards on top of those records.

Progress records are created lazily the first time they are needed. Every
save goes through metrics.apply_derived_fields, so percentages, overall
progress and risk flags are always derived from the stored counters.

Usage:
    from academy.domains.progress import ProgressService

    service = ProgressService(db)

    # Recalculate one student
    progress = await service.calculate(student_id, batch_id)

    # Instructor view of a batch
    dashboard = await service.batch_dashboard(batch_id, instructor_id=user.id)

    # Students below 60% overall progress
    students = await service.at_risk_students(batch_id, threshold=60.0)
"""

import logging
import math
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.exceptions import (
    AcademyError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from academy.domains.progress import metrics
from academy.infrastructure.database.models import (
    Assignment,
    AssignmentProgressStatus,
    AttendanceStatus,
    Batch,
    Course,
    Enrollment,
    EnrollmentStatus,
    LearningMaterial,
    LiveSession,
    MaterialStatus,
    Progress,
    SessionAttendee,
    SessionStatus,
    Submission,
    User,
)
from academy.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

COMPLETED_MATERIAL_STATUSES = {MaterialStatus.COMPLETED.value, MaterialStatus.REVIEWED.value}
ATTENDED_STATUSES = {AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value}
COUNTED_SESSION_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.ONGOING.value)

COMPLETION_THRESHOLD = 90.0
TOP_PERFORMERS_LIMIT = 5
NEEDS_ATTENTION_LIMIT = 10
ASSIGNMENT_STATS_LIMIT = 5
RECENT_SUBMISSIONS_LIMIT = 5
UPCOMING_DEADLINE_DAYS = 7


class NotEnrolledError(NotFoundError):
    """Raised when the student has no active enrollment in the batch."""

    code = "not_enrolled"


class _Serializable:
    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary for API responses."""
        return to_jsonable_python(asdict(self))  # type: ignore[call-overload]


@dataclass
class StudentProgressRow(_Serializable):
    """One student's line on the instructor dashboard."""

    student_id: str
    student_name: str
    student_email: str
    overall_progress: float
    material_completion_percentage: float
    attendance_percentage: float
    assignment_completion_percentage: float
    is_at_risk: bool
    risk_factors: list[dict[str, Any]] = field(default_factory=list)
    last_active: datetime | None = None


@dataclass
class AssignmentStat(_Serializable):
    assignment_id: str
    title: str
    deadline: datetime
    total_students: int
    submissions: int
    submission_rate: float


@dataclass
class BatchDashboard(_Serializable):
    """Instructor dashboard for a batch."""

    batch_id: str
    batch_name: str
    total_students: int
    average_progress: float
    completion_rate: float
    at_risk_count: int
    at_risk_percentage: float
    student_progress: list[StudentProgressRow] = field(default_factory=list)
    top_performers: list[StudentProgressRow] = field(default_factory=list)
    needs_attention: list[StudentProgressRow] = field(default_factory=list)
    assignment_stats: list[AssignmentStat] = field(default_factory=list)


@dataclass
class AtRiskStudent(_Serializable):
    student_id: str
    student_name: str
    student_email: str
    overall_progress: float
    risk_factors: list[dict[str, Any]]
    last_active: datetime | None
    days_inactive: int


@dataclass
class BatchProgressSummary(_Serializable):
    batch_id: str
    batch_name: str
    course_title: str
    start_date: datetime
    end_date: datetime
    overall_progress: float
    material_completion_percentage: float
    attendance_percentage: float
    assignment_completion_percentage: float
    is_at_risk: bool
    last_active: datetime | None


@dataclass
class StudentOverallStats(_Serializable):
    total_batches: int = 0
    batches_in_progress: int = 0
    batches_completed: int = 0
    average_progress: float = 0.0
    total_time_spent: int = 0


@dataclass
class StudentDashboard(_Serializable):
    """Complete student dashboard data."""

    student_id: str
    overall_stats: StudentOverallStats
    batch_progress: list[BatchProgressSummary] = field(default_factory=list)
    at_risk_batches: list[dict[str, Any]] = field(default_factory=list)
    recent_activity: list[dict[str, Any]] = field(default_factory=list)
    upcoming_deadlines: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class BatchCalculationResult(_Serializable):
    """Outcome of recalculating every student in a batch."""

    batch_id: str
    succeeded: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


class ProgressService:
    """Service for calculating and reporting student progress.

    Attributes:
        _db: Async database session. Every write operation commits.
        _clock: Source of the current time.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now) -> None:
        self._db = db
        self._clock = clock

    # ========== Lookups ==========

    async def ensure_enrolled(self, student_id: str, batch_id: str) -> Enrollment:
        """Return the student's active enrollment or raise NotEnrolledError."""
        result = await self._db.execute(
            select(Enrollment).where(
                Enrollment.student_id == student_id,
                Enrollment.batch_id == batch_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.access_revoked.is_(False),
            )
        )
        enrollment = result.scalar_one_or_none()
        if enrollment is None:
            raise NotEnrolledError(
                "Student not enrolled in this batch",
                details={"student_id": student_id, "batch_id": batch_id},
            )
        return enrollment

    async def _find_progress(self, student_id: str, batch_id: str) -> Progress | None:
        result = await self._db.execute(
            select(Progress).where(
                Progress.student_id == student_id,
                Progress.batch_id == batch_id,
            )
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, student_id: str, batch_id: str) -> Progress:
        progress = await self._find_progress(student_id, batch_id)
        if progress is not None:
            return progress

        enrollment = await self.ensure_enrolled(student_id, batch_id)
        progress = Progress.new(student_id, batch_id, enrollment.course_id)
        self._db.add(progress)
        return progress

    # ========== Calculation ==========

    async def calculate(self, student_id: str, batch_id: str, record_activity: bool = True) -> Progress:
        """Recalculate a student's progress in a batch.

        Loads the batch's published materials, completed or ongoing live
        sessions, published assignments and the student's submissions and
        attendance, rebuilds the per-item lists, updates the streak and
        saves the record.

        Args:
            student_id: Student to calculate.
            batch_id: Batch the student is enrolled in.
            record_activity: Count this calculation as student activity.
                System-triggered recalculations pass False so that
                last_active and the streak are left alone.

        Returns:
            The saved Progress record.

        Raises:
            NotEnrolledError: If the student has no active enrollment.
        """
        enrollment = await self.ensure_enrolled(student_id, batch_id)
        now = self._clock()

        progress = await self._find_progress(student_id, batch_id)
        snapshot = await self._collect(student_id, batch_id, progress)

        is_new = progress is None
        if progress is None:
            progress = Progress.new(student_id, batch_id, enrollment.course_id)
            self._db.add(progress)

        self._apply_snapshot(progress, snapshot, now, record_activity)

        try:
            await self._db.commit()
        except IntegrityError:
            if not is_new:
                raise
            # Created concurrently by another request
            await self._db.rollback()
            progress = await self._find_progress(student_id, batch_id)
            if progress is None:
                raise
            self._apply_snapshot(progress, snapshot, now, record_activity)
            await self._db.commit()

        logger.debug(
            "Calculated progress: student=%s, batch=%s, overall=%.1f, at_risk=%s",
            student_id,
            batch_id,
            progress.overall_progress,
            progress.is_at_risk,
        )
        return progress

    async def _collect(self, student_id: str, batch_id: str, existing: Progress | None) -> dict[str, Any]:
        """Gather per-item state for a student from the batch content."""
        materials = (
            await self._db.execute(
                select(LearningMaterial.id)
                .where(LearningMaterial.batch_id == batch_id, LearningMaterial.is_published.is_(True))
                .order_by(LearningMaterial.created_at)
            )
        ).scalars().all()

        sessions = (
            await self._db.execute(
                select(LiveSession.id)
                .where(LiveSession.batch_id == batch_id, LiveSession.status.in_(COUNTED_SESSION_STATUSES))
                .order_by(LiveSession.scheduled_start)
            )
        ).scalars().all()

        attendees: dict[str, SessionAttendee] = {}
        if sessions:
            result = await self._db.execute(
                select(SessionAttendee).where(
                    SessionAttendee.student_id == student_id,
                    SessionAttendee.session_id.in_(sessions),
                )
            )
            attendees = {row.session_id: row for row in result.scalars()}

        assignments = (
            await self._db.execute(
                select(Assignment)
                .where(Assignment.batch_id == batch_id, Assignment.is_published.is_(True))
                .order_by(Assignment.deadline)
            )
        ).scalars().all()

        submissions = {
            row.assignment_id: row
            for row in (
                await self._db.execute(
                    select(Submission).where(
                        Submission.student_id == student_id,
                        Submission.batch_id == batch_id,
                    )
                )
            ).scalars()
        }

        known_materials = {item["material_id"]: item for item in (existing.material_progress if existing else [])}
        recorded_attendance = {item["session_id"]: item for item in (existing.session_attendance if existing else [])}

        material_progress = [
            known_materials.get(material_id)
            or {
                "material_id": material_id,
                "status": MaterialStatus.NOT_STARTED.value,
                "percent": 0,
                "time_spent": 0,
            }
            for material_id in materials
        ]

        session_attendance = []
        for session_id in sessions:
            recorded = recorded_attendance.get(session_id)
            attendee = attendees.get(session_id)
            if attendee is not None:
                if recorded is not None and recorded["status"] in ATTENDED_STATUSES:
                    status = recorded["status"]
                else:
                    status = AttendanceStatus.PRESENT.value
                duration = attendee.duration_minutes
            elif recorded is not None:
                status = recorded["status"]
                duration = recorded.get("duration", 0)
            else:
                status = AttendanceStatus.ABSENT.value
                duration = 0
            session_attendance.append({"session_id": session_id, "status": status, "duration": duration})

        assignment_progress = []
        graded_scores = []
        for assignment in assignments:
            submission = submissions.get(assignment.id)
            if submission is None:
                status = AssignmentProgressStatus.NOT_STARTED.value
            elif submission.is_graded:
                status = AssignmentProgressStatus.GRADED.value
                if submission.percentage is not None:
                    graded_scores.append(submission.percentage)
            else:
                status = AssignmentProgressStatus.SUBMITTED.value
            assignment_progress.append(
                {
                    "assignment_id": assignment.id,
                    "submission_id": submission.id if submission else None,
                    "status": status,
                    "score": submission.marks_obtained if submission else None,
                    "max_score": assignment.max_marks,
                }
            )

        return {
            "material_progress": material_progress,
            "session_attendance": session_attendance,
            "assignment_progress": assignment_progress,
            "total_materials": len(material_progress),
            "completed_materials": sum(
                1 for item in material_progress if item["status"] in COMPLETED_MATERIAL_STATUSES
            ),
            "total_time_spent": sum(int(item.get("time_spent") or 0) for item in material_progress),
            "total_sessions": len(session_attendance),
            "attended_sessions": sum(1 for item in session_attendance if item["status"] in ATTENDED_STATUSES),
            "total_assignments": len(assignment_progress),
            "submitted_assignments": sum(
                1 for item in assignment_progress if item["status"] != AssignmentProgressStatus.NOT_STARTED.value
            ),
            "graded_assignments": sum(
                1 for item in assignment_progress if item["status"] == AssignmentProgressStatus.GRADED.value
            ),
            "average_score": sum(graded_scores) / len(graded_scores) if graded_scores else 0.0,
        }

    def _apply_snapshot(
        self,
        progress: Progress,
        snapshot: dict[str, Any],
        now: datetime,
        record_activity: bool,
    ) -> None:
        for name, value in snapshot.items():
            setattr(progress, name, value)
        progress.last_calculated = now
        if record_activity:
            metrics.update_streak(progress, now)
        metrics.apply_derived_fields(progress, now)

    async def calculate_batch(self, batch_id: str) -> BatchCalculationResult:
        """Recalculate every active student of a batch.

        Runs as a system job, so it does not count as student activity.
        Students whose access is revoked are skipped. Failures are logged
        per student and do not stop the run.
        """
        student_ids = (
            await self._db.execute(
                select(Enrollment.student_id).where(
                    Enrollment.batch_id == batch_id,
                    Enrollment.status == EnrollmentStatus.ACTIVE.value,
                    Enrollment.access_revoked.is_(False),
                )
            )
        ).scalars().all()

        result = BatchCalculationResult(batch_id=batch_id)
        for student_id in student_ids:
            try:
                await self.calculate(student_id, batch_id, record_activity=False)
                result.succeeded += 1
            except (AcademyError, SQLAlchemyError) as e:
                await self._db.rollback()
                result.failed += 1
                result.errors.append({"student_id": student_id, "error": str(e)})
                logger.warning("Progress calculation failed: student=%s, batch=%s: %s", student_id, batch_id, e)

        logger.info(
            "Recalculated batch progress: batch=%s, succeeded=%d, failed=%d",
            batch_id,
            result.succeeded,
            result.failed,
        )
        return result

    # ========== Manual tracking ==========

    async def update_material_progress(
        self,
        student_id: str,
        batch_id: str,
        material_id: str,
        status: str,
        percent: float = 0,
        time_spent: int = 0,
    ) -> Progress:
        """Record a student's progress on one learning material.

        Raises:
            ValidationError: If the status or percent is invalid.
            NotEnrolledError: If there is no record and no active enrollment.
        """
        try:
            status = MaterialStatus(status).value
        except ValueError as e:
            raise ValidationError(f"Unknown material status: {status}") from e
        if not 0 <= percent <= 100:
            raise ValidationError("percent must be between 0 and 100")
        if time_spent < 0:
            raise ValidationError("time_spent must not be negative")

        progress = await self._get_or_create(student_id, batch_id)

        entry = {"material_id": material_id, "status": status, "percent": percent, "time_spent": time_spent}
        items = [item for item in progress.material_progress or [] if item["material_id"] != material_id]
        progress.material_progress = [*items, entry]

        progress.completed_materials = sum(
            1 for item in progress.material_progress if item["status"] in COMPLETED_MATERIAL_STATUSES
        )
        progress.total_materials = max(progress.total_materials, len(progress.material_progress))
        progress.total_time_spent = sum(int(item.get("time_spent") or 0) for item in progress.material_progress)

        return await self._save_tracking(progress)

    async def record_session_attendance(
        self,
        student_id: str,
        batch_id: str,
        session_id: str,
        status: str,
        duration: int = 0,
    ) -> Progress:
        """Record a student's attendance status for one live session.

        Raises:
            ValidationError: If the status or duration is invalid.
            NotEnrolledError: If there is no record and no active enrollment.
        """
        try:
            status = AttendanceStatus(status).value
        except ValueError as e:
            raise ValidationError(f"Unknown attendance status: {status}") from e
        if duration < 0:
            raise ValidationError("duration must not be negative")

        progress = await self._get_or_create(student_id, batch_id)

        entry = {"session_id": session_id, "status": status, "duration": duration}
        items = [item for item in progress.session_attendance or [] if item["session_id"] != session_id]
        progress.session_attendance = [*items, entry]

        progress.attended_sessions = sum(
            1 for item in progress.session_attendance if item["status"] in ATTENDED_STATUSES
        )
        progress.total_sessions = max(progress.total_sessions, len(progress.session_attendance))

        return await self._save_tracking(progress)

    async def _save_tracking(self, progress: Progress) -> Progress:
        now = self._clock()
        metrics.update_streak(progress, now)
        metrics.apply_derived_fields(progress, now)
        await self._db.commit()
        return progress

    # ========== Reporting ==========

    async def batch_dashboard(self, batch_id: str, instructor_id: str | None = None) -> BatchDashboard:
        """Build the instructor dashboard for a batch.

        Students whose access is revoked are left out. Missing progress
        records are calculated on the way without counting as activity.

        Args:
            batch_id: Batch to report on.
            instructor_id: When given, must be the batch's instructor.

        Returns:
            BatchDashboard ranked by overall progress, highest first.

        Raises:
            NotFoundError: If the batch does not exist.
            AuthorizationError: If instructor_id does not own the batch.
        """
        batch = await self._db.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch not found: {batch_id}")
        if instructor_id is not None and batch.instructor_id != instructor_id:
            raise AuthorizationError("Not authorized to view this batch dashboard")

        students = (
            await self._db.execute(
                select(User)
                .join(Enrollment, Enrollment.student_id == User.id)
                .where(
                    Enrollment.batch_id == batch_id,
                    Enrollment.status == EnrollmentStatus.ACTIVE.value,
                    Enrollment.access_revoked.is_(False),
                )
            )
        ).scalars().all()

        records = {
            record.student_id: record
            for record in (
                await self._db.execute(select(Progress).where(Progress.batch_id == batch_id))
            ).scalars()
        }

        rows: list[StudentProgressRow] = []
        for student in students:
            progress = records.get(student.id)
            if progress is None:
                progress = await self.calculate(student.id, batch_id, record_activity=False)
            rows.append(
                StudentProgressRow(
                    student_id=student.id,
                    student_name=student.full_name,
                    student_email=student.email,
                    overall_progress=progress.overall_progress,
                    material_completion_percentage=progress.material_completion_percentage,
                    attendance_percentage=progress.attendance_percentage,
                    assignment_completion_percentage=progress.assignment_completion_percentage,
                    is_at_risk=progress.is_at_risk,
                    risk_factors=list(progress.risk_factors or []),
                    last_active=ensure_utc(progress.last_active),
                )
            )

        rows.sort(key=lambda row: row.overall_progress, reverse=True)

        total = len(rows)
        at_risk_count = sum(1 for row in rows if row.is_at_risk)
        completed = sum(1 for row in rows if row.overall_progress >= COMPLETION_THRESHOLD)

        return BatchDashboard(
            batch_id=batch.id,
            batch_name=batch.name,
            total_students=total,
            average_progress=sum(row.overall_progress for row in rows) / total if total else 0.0,
            completion_rate=metrics.percentage(completed, total),
            at_risk_count=at_risk_count,
            at_risk_percentage=metrics.percentage(at_risk_count, total),
            student_progress=rows,
            top_performers=rows[:TOP_PERFORMERS_LIMIT],
            needs_attention=[row for row in reversed(rows) if row.is_at_risk][:NEEDS_ATTENTION_LIMIT],
            assignment_stats=await self._assignment_stats(batch_id, total),
        )

    async def _assignment_stats(self, batch_id: str, enrolled: int) -> list[AssignmentStat]:
        """Lowest submission rates among active students."""
        active_students = select(Enrollment.student_id).where(
            Enrollment.batch_id == batch_id,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            Enrollment.access_revoked.is_(False),
        )
        submission_count = (
            select(func.count(Submission.id))
            .where(
                Submission.assignment_id == Assignment.id,
                Submission.student_id.in_(active_students),
            )
            .correlate(Assignment)
            .scalar_subquery()
        )

        rows = (
            await self._db.execute(
                select(Assignment, submission_count).where(
                    Assignment.batch_id == batch_id,
                    Assignment.is_published.is_(True),
                )
            )
        ).all()

        stats = [
            AssignmentStat(
                assignment_id=assignment.id,
                title=assignment.title,
                deadline=ensure_utc(assignment.deadline),  # type: ignore[arg-type]
                total_students=enrolled,
                submissions=count,
                submission_rate=metrics.percentage(count, enrolled),
            )
            for assignment, count in rows
        ]
        stats.sort(key=lambda stat: stat.submission_rate)
        return stats[:ASSIGNMENT_STATS_LIMIT]

    async def at_risk_students(self, batch_id: str, threshold: float = 60.0) -> list[AtRiskStudent]:
        """List actively enrolled students whose overall progress is below threshold.

        Only existing progress records are considered. Results are ordered
        lowest progress first.

        Raises:
            ValidationError: If threshold is outside 0-100.
        """
        if not 0 <= threshold <= 100:
            raise ValidationError("threshold must be between 0 and 100")

        now = self._clock()
        rows = (
            await self._db.execute(
                select(Progress, User)
                .join(User, User.id == Progress.student_id)
                .join(
                    Enrollment,
                    and_(
                        Enrollment.student_id == Progress.student_id,
                        Enrollment.batch_id == Progress.batch_id,
                    ),
                )
                .where(
                    Progress.batch_id == batch_id,
                    Enrollment.status == EnrollmentStatus.ACTIVE.value,
                    Progress.overall_progress < threshold,
                )
                .order_by(Progress.overall_progress.asc())
            )
        ).all()

        return [
            AtRiskStudent(
                student_id=user.id,
                student_name=user.full_name,
                student_email=user.email,
                overall_progress=progress.overall_progress,
                risk_factors=list(progress.risk_factors or []),
                last_active=ensure_utc(progress.last_active),
                days_inactive=metrics.days_since(progress.last_active, now),
            )
            for progress, user in rows
        ]

    async def student_dashboard(self, student_id: str) -> StudentDashboard:
        """Build a student's dashboard across active enrollments with access."""
        now = self._clock()
        enrollments = (
            await self._db.execute(
                select(Enrollment, Batch, Course)
                .join(Batch, Batch.id == Enrollment.batch_id)
                .join(Course, Course.id == Enrollment.course_id)
                .where(
                    Enrollment.student_id == student_id,
                    Enrollment.status == EnrollmentStatus.ACTIVE.value,
                    Enrollment.access_revoked.is_(False),
                )
                .order_by(Batch.start_date)
            )
        ).all()

        dashboard = StudentDashboard(
            student_id=student_id,
            overall_stats=StudentOverallStats(total_batches=len(enrollments)),
        )

        total_progress = 0.0
        for _enrollment, batch, course in enrollments:
            progress = await self._find_progress(student_id, batch.id)
            if progress is None:
                progress = await self.calculate(student_id, batch.id)

            dashboard.batch_progress.append(
                BatchProgressSummary(
                    batch_id=batch.id,
                    batch_name=batch.name,
                    course_title=course.title,
                    start_date=ensure_utc(batch.start_date),  # type: ignore[arg-type]
                    end_date=ensure_utc(batch.end_date),  # type: ignore[arg-type]
                    overall_progress=progress.overall_progress,
                    material_completion_percentage=progress.material_completion_percentage,
                    attendance_percentage=progress.attendance_percentage,
                    assignment_completion_percentage=progress.assignment_completion_percentage,
                    is_at_risk=progress.is_at_risk,
                    last_active=ensure_utc(progress.last_active),
                )
            )

            total_progress += progress.overall_progress
            dashboard.overall_stats.total_time_spent += progress.total_time_spent
            if progress.overall_progress >= COMPLETION_THRESHOLD:
                dashboard.overall_stats.batches_completed += 1
            else:
                dashboard.overall_stats.batches_in_progress += 1

            if progress.is_at_risk:
                dashboard.at_risk_batches.append(
                    {
                        "batch_id": batch.id,
                        "batch_name": batch.name,
                        "risk_factors": list(progress.risk_factors or []),
                        "overall_progress": progress.overall_progress,
                    }
                )

        if enrollments:
            dashboard.overall_stats.average_progress = total_progress / len(enrollments)

        recent = (
            await self._db.execute(
                select(Submission, Assignment.title, Batch.name)
                .join(Assignment, Assignment.id == Submission.assignment_id)
                .join(Batch, Batch.id == Submission.batch_id)
                .where(Submission.student_id == student_id)
                .order_by(Submission.submitted_at.desc())
                .limit(RECENT_SUBMISSIONS_LIMIT)
            )
        ).all()
        dashboard.recent_activity = [
            {
                "type": "submission",
                "title": title,
                "batch": batch_name,
                "date": ensure_utc(submission.submitted_at),
                "status": submission.status,
                "score": submission.marks_obtained,
            }
            for submission, title, batch_name in recent
        ]

        batch_ids = [batch.id for _enrollment, batch, _course in enrollments]
        if batch_ids:
            upcoming = (
                await self._db.execute(
                    select(Assignment, Batch.name)
                    .join(Batch, Batch.id == Assignment.batch_id)
                    .where(
                        Assignment.batch_id.in_(batch_ids),
                        Assignment.is_published.is_(True),
                        Assignment.deadline > now,
                        Assignment.deadline < now + timedelta(days=UPCOMING_DEADLINE_DAYS),
                    )
                    .order_by(Assignment.deadline)
                )
            ).all()
            dashboard.upcoming_deadlines = [
                {
                    "assignment_id": assignment.id,
                    "title": assignment.title,
                    "batch": batch_name,
                    "deadline": ensure_utc(assignment.deadline),
                    "days_left": math.ceil(
                        (ensure_utc(assignment.deadline) - now).total_seconds() / 86400  # type: ignore[operator]
                    ),
                }
                for assignment, batch_name in upcoming
            ]

        return dashboard
