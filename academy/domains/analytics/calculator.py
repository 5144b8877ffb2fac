# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics calculator module.

This module computes read-mostly reports over a reporting window:
- System analytics: enrollment, revenue, engagement and course performance
- Batch analytics: enrollment, payments, sessions, assignments, doubts
- Course analytics: enrollment trend, revenue, batch occupancy, support
- Payment collection: completed payments by type and month
- Student engagement: sessions, materials, assignments, doubts, activity

Every report is read through the cache layer (cache-aside). Results are
normalised to JSON-compatible values before they are cached, so a cached
report is identical to a freshly computed one. Rates always use the actual
number of active enrollments as their denominator.

Usage:
    from academy.domains.analytics import AnalyticsCalculator

    calculator = AnalyticsCalculator(db, get_cache(), settings.cache)

    report = await calculator.get_system_analytics("30d")
    batch = await calculator.get_batch_analytics(batch_id, "7d")
    await calculator.clear_cache(["^analytics:batch:"])
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import Select, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import CacheSettings
from academy.core.exceptions import NotFoundError
from academy.domains.analytics.time_range import TimeRange
from academy.infrastructure.cache.redis_client import RedisError
from academy.infrastructure.cache.store import CacheStore
from academy.infrastructure.database.models import (
    Assignment,
    Batch,
    Course,
    Doubt,
    DoubtStatus,
    Enrollment,
    EnrollmentStatus,
    LearningMaterial,
    LiveSession,
    Payment,
    PaymentType,
    Progress,
    SessionAttendee,
    SessionStatus,
    Submission,
    TransactionStatus,
    User,
    UserRole,
)
from academy.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

SESSION_WEIGHT = 0.3
MATERIAL_WEIGHT = 0.25
SUBMISSION_WEIGHT = 0.3
DOUBT_WEIGHT = 0.15

ACTIVE_DAYS = 7
COMPLETION_THRESHOLD = 90.0
ATTENTION_THRESHOLD = 60.0
ATTENTION_LIMIT = 5

COUNTED_SESSION_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.ONGOING.value)


def _rate(part: float, whole: float) -> float:
    """Percentage rounded to two decimals, 0 when the whole is empty."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def _avg(total: float, count: int) -> float:
    if not count:
        return 0.0
    return round(total / count, 2)


def _daily_trend(timestamps: Iterable[datetime | None]) -> list[dict[str, Any]]:
    counts: dict[str, int] = defaultdict(int)
    for ts in timestamps:
        if ts is not None:
            counts[ensure_utc(ts).date().isoformat()] += 1  # type: ignore[union-attr]
    return [{"date": day, "count": counts[day]} for day in sorted(counts)]


class AnalyticsCalculator:
    """Cached aggregate reports.

    Attributes:
        _db: Async database session used for the aggregate queries.
        _cache: Cache store for computed reports.
        _settings: Cache TTL configuration.
        _clock: Source of the current time.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheStore,
        settings: CacheSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._cache = cache
        self._settings = settings
        self._clock = clock

    # ========== Cache-aside ==========

    def _ttl_for(self, time_range: TimeRange) -> int:
        if time_range is TimeRange.LAST_24_HOURS:
            return self._settings.short_ttl_seconds
        return self._settings.long_ttl_seconds

    async def _cached(
        self,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        """Return the cached report for key, computing and storing it on a miss.

        Cache read failures count as misses and cache write failures are
        only logged; neither fails the report.
        """
        try:
            cached = await self._cache.get(key)
        except (SQLAlchemyError, RedisError) as e:
            logger.warning("Analytics cache read failed for %s: %s", key, e)
            cached = None

        if cached is not None:
            logger.debug("Analytics cache hit: %s", key)
            return cached

        report = to_jsonable_python(await compute())

        try:
            await self._cache.set(key, report, ttl_seconds)
        except (SQLAlchemyError, RedisError) as e:
            logger.warning("Analytics cache write failed for %s: %s", key, e)

        return report

    async def clear_cache(self, patterns: list[str] | None = None) -> int:
        """Invalidate cached reports whose keys match any of the patterns.

        Args:
            patterns: Regular expressions searched in cache keys. Defaults
                to every analytics key.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for pattern in patterns or ["^analytics:"]:
            removed += await self._cache.invalidate_pattern(pattern)

        logger.info("Cleared analytics cache: patterns=%s, removed=%d", patterns, removed)
        return removed

    # ========== Public reports ==========

    async def get_system_analytics(self, time_range: str | TimeRange = TimeRange.LAST_30_DAYS) -> dict[str, Any]:
        """System-wide overview, financial, engagement and course figures."""
        time_range = TimeRange.parse(time_range)
        return await self._cached(
            f"analytics:system:{time_range.value}",
            self._ttl_for(time_range),
            lambda: self._compute_system_analytics(time_range),
        )

    async def get_batch_analytics(
        self,
        batch_id: str,
        time_range: str | TimeRange = TimeRange.LAST_30_DAYS,
    ) -> dict[str, Any]:
        """Enrollment, payment, engagement and performance figures of a batch.

        Raises:
            NotFoundError: If the batch does not exist.
        """
        time_range = TimeRange.parse(time_range)
        return await self._cached(
            f"analytics:batch:{batch_id}:{time_range.value}",
            self._ttl_for(time_range),
            lambda: self._compute_batch_analytics(batch_id, time_range),
        )

    async def get_course_analytics(
        self,
        course_id: str,
        time_range: str | TimeRange = TimeRange.LAST_30_DAYS,
    ) -> dict[str, Any]:
        """Enrollment, revenue, batch and support figures of a course.

        Raises:
            NotFoundError: If the course does not exist.
        """
        time_range = TimeRange.parse(time_range)
        return await self._cached(
            f"analytics:course:{course_id}:{time_range.value}",
            self._ttl_for(time_range),
            lambda: self._compute_course_analytics(course_id, time_range),
        )

    async def get_payment_collection_report(
        self,
        time_range: str | TimeRange = TimeRange.LAST_30_DAYS,
    ) -> dict[str, Any]:
        """Completed payments split into full and EMI, with a monthly breakdown."""
        time_range = TimeRange.parse(time_range)
        return await self._cached(
            f"analytics:payments:{time_range.value}",
            self._ttl_for(time_range),
            lambda: self._compute_payment_report(time_range),
        )

    async def get_student_engagement(
        self,
        time_range: str | TimeRange = TimeRange.LAST_30_DAYS,
    ) -> dict[str, Any]:
        """Detailed engagement metrics with daily trends."""
        time_range = TimeRange.parse(time_range)
        return await self._cached(
            f"analytics:engagement:{time_range.value}",
            self._ttl_for(time_range),
            lambda: self._compute_student_engagement(time_range),
        )

    # ========== Shared queries ==========

    async def _count(self, stmt: Select) -> int:
        return int((await self._db.execute(stmt)).scalar_one() or 0)

    async def _active_enrollments_by_batch(self) -> dict[str, int]:
        rows = await self._db.execute(
            select(Enrollment.batch_id, func.count(Enrollment.id))
            .where(
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.access_revoked.is_(False),
            )
            .group_by(Enrollment.batch_id)
        )
        return {batch_id: count for batch_id, count in rows.all()}

    async def _active_student_ids(self) -> set[str]:
        rows = await self._db.execute(
            select(distinct(Enrollment.student_id)).where(
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.access_revoked.is_(False),
            )
        )
        return set(rows.scalars().all())

    async def _session_metrics(
        self,
        start: datetime,
        end: datetime,
        enrolled: dict[str, int],
        batch_id: str | None = None,
    ) -> dict[str, Any]:
        """Attendance of completed and ongoing sessions held in the window."""
        stmt = (
            select(LiveSession.id, LiveSession.batch_id, LiveSession.scheduled_start, func.count(SessionAttendee.id))
            .outerjoin(SessionAttendee, SessionAttendee.session_id == LiveSession.id)
            .where(
                LiveSession.scheduled_start >= start,
                LiveSession.scheduled_start <= end,
                LiveSession.status.in_(COUNTED_SESSION_STATUSES),
            )
            .group_by(LiveSession.id, LiveSession.batch_id, LiveSession.scheduled_start)
        )
        if batch_id is not None:
            stmt = stmt.where(LiveSession.batch_id == batch_id)

        sessions = (await self._db.execute(stmt)).all()

        total_attendance = sum(count for *_, count in sessions)
        possible = sum(enrolled.get(session_batch, 0) for _, session_batch, _, _ in sessions)

        per_day: dict[str, int] = defaultdict(int)
        for _, _, started, count in sessions:
            per_day[ensure_utc(started).date().isoformat()] += count  # type: ignore[union-attr]

        return {
            "total_sessions": len(sessions),
            "total_attendance": total_attendance,
            "average_attendance": _avg(total_attendance, len(sessions)),
            "peak_attendance": max((count for *_, count in sessions), default=0),
            "attendance_rate": min(100.0, _rate(total_attendance, possible)),
            "trend": [{"date": day, "count": per_day[day]} for day in sorted(per_day)],
        }

    async def _submission_metrics(
        self,
        start: datetime,
        end: datetime,
        enrolled: dict[str, int],
        batch_id: str | None = None,
    ) -> dict[str, Any]:
        """Submissions for published assignments due in the window."""
        assignment_stmt = select(Assignment.id, Assignment.batch_id, Assignment.title).where(
            Assignment.is_published.is_(True),
            Assignment.deadline >= start,
            Assignment.deadline <= end,
        )
        if batch_id is not None:
            assignment_stmt = assignment_stmt.where(Assignment.batch_id == batch_id)
        assignments = (await self._db.execute(assignment_stmt)).all()

        submissions: list[Any] = []
        if assignments:
            active = select(Enrollment.student_id).where(
                Enrollment.batch_id == Submission.batch_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            submissions = (
                await self._db.execute(
                    select(Submission.assignment_id, Submission.submitted_at, Submission.percentage, Submission.is_graded)
                    .where(
                        Submission.assignment_id.in_([row.id for row in assignments]),
                        Submission.student_id.in_(active),
                    )
                )
            ).all()

        by_assignment: dict[str, int] = defaultdict(int)
        for row in submissions:
            by_assignment[row.assignment_id] += 1

        possible = sum(enrolled.get(row.batch_id, 0) for row in assignments)
        graded = [row.percentage for row in submissions if row.is_graded and row.percentage is not None]

        return {
            "total_assignments": len(assignments),
            "total_submissions": len(submissions),
            "submission_rate": min(100.0, _rate(len(submissions), possible)),
            "average_score": _avg(sum(graded), len(graded)),
            "assignments": [
                {
                    "assignment_id": row.id,
                    "title": row.title,
                    "total_students": enrolled.get(row.batch_id, 0),
                    "submissions": by_assignment[row.id],
                }
                for row in assignments
            ],
            "trend": _daily_trend(row.submitted_at for row in submissions),
        }

    async def _doubt_metrics(
        self,
        start: datetime,
        end: datetime,
        active_students: int,
        batch_id: str | None = None,
        course_id: str | None = None,
    ) -> dict[str, Any]:
        """Doubts raised in the window."""
        stmt = select(Doubt).where(Doubt.created_at >= start, Doubt.created_at <= end)
        if batch_id is not None:
            stmt = stmt.where(Doubt.batch_id == batch_id)
        if course_id is not None:
            stmt = stmt.where(Doubt.course_id == course_id)
        doubts = (await self._db.execute(stmt)).scalars().all()

        total = len(doubts)
        resolved = sum(1 for doubt in doubts if doubt.status == DoubtStatus.RESOLVED.value)
        with_reply = sum(1 for doubt in doubts if doubt.instructor_reply_count > 0)
        replies = sum(doubt.reply_count for doubt in doubts)
        participants = len({doubt.student_id for doubt in doubts})

        return {
            "total_doubts": total,
            "resolved": resolved,
            "with_instructor_reply": with_reply,
            "total_replies": replies,
            "average_replies": _avg(replies, total),
            "resolution_rate": _rate(resolved, total),
            "instructor_response_rate": _rate(with_reply, total),
            "participating_students": participants,
            "participation_rate": min(100.0, _rate(participants, active_students)),
            "trend": _daily_trend(doubt.created_at for doubt in doubts),
        }

    async def _average_material_completion(self) -> float:
        value = (
            await self._db.execute(
                select(func.avg(Progress.material_completion_percentage))
                .join(
                    Enrollment,
                    (Enrollment.student_id == Progress.student_id) & (Enrollment.batch_id == Progress.batch_id),
                )
                .where(Enrollment.status == EnrollmentStatus.ACTIVE.value)
            )
        ).scalar_one()
        return round(float(value or 0.0), 2)

    async def _average_progress(self) -> float:
        value = (await self._db.execute(select(func.avg(Progress.overall_progress)))).scalar_one()
        return round(float(value or 0.0), 2)

    async def _recently_active_students(self, now: datetime) -> int:
        return await self._count(
            select(func.count(distinct(Progress.student_id))).where(
                Progress.last_active >= now - timedelta(days=ACTIVE_DAYS)
            )
        )

    @staticmethod
    def overall_engagement(
        session_rate: float,
        material_completion: float,
        submission_rate: float,
        doubt_participation: float,
    ) -> float:
        """Weighted engagement score from four 0-100 components."""
        return round(
            min(100.0, session_rate) * SESSION_WEIGHT
            + min(100.0, material_completion) * MATERIAL_WEIGHT
            + min(100.0, submission_rate) * SUBMISSION_WEIGHT
            + min(100.0, doubt_participation) * DOUBT_WEIGHT,
            2,
        )

    async def _payment_rows(self, start: datetime, end: datetime, **filters: str) -> list[Any]:
        stmt = select(Payment.payment_type, Payment.amount, Payment.paid_at, Payment.student_id).where(
            Payment.status == TransactionStatus.COMPLETED.value,
            Payment.paid_at >= start,
            Payment.paid_at <= end,
        )
        for column, value in filters.items():
            stmt = stmt.where(getattr(Payment, column) == value)
        return list((await self._db.execute(stmt)).all())

    # ========== Computations ==========

    async def _compute_system_analytics(self, time_range: TimeRange) -> dict[str, Any]:
        now = self._clock()
        start, end = time_range.window(now)

        enrolled = await self._active_enrollments_by_batch()
        active_enrollments = sum(enrolled.values())
        active_student_ids = await self._active_student_ids()

        total_students = await self._count(
            select(func.count(User.id)).where(User.role == UserRole.STUDENT.value, User.is_active.is_(True))
        )

        payments = await self._payment_rows(start, end)
        total_revenue = round(sum(float(row.amount) for row in payments), 2)
        by_type: dict[str, dict[str, float]] = {
            key: {"amount": 0.0, "count": 0, "average": 0.0} for key in ("full", "emi", "other")
        }
        for row in payments:
            bucket = by_type.get(row.payment_type, by_type["other"])
            bucket["amount"] += float(row.amount)
            bucket["count"] += 1
        for bucket in by_type.values():
            bucket["amount"] = round(bucket["amount"], 2)
            bucket["average"] = _avg(bucket["amount"], int(bucket["count"]))
        paying_students = len({row.student_id for row in payments})

        sessions = await self._session_metrics(start, end, enrolled)
        submissions = await self._submission_metrics(start, end, enrolled)
        doubts = await self._doubt_metrics(start, end, len(active_student_ids))
        material_completion = await self._average_material_completion()

        return {
            "overview": {
                "total_enrollments": await self._count(
                    select(func.count(Enrollment.id)).where(
                        Enrollment.enrolled_at >= start,
                        Enrollment.enrolled_at <= end,
                    )
                ),
                "active_enrollments": active_enrollments,
                "total_courses": await self._count(
                    select(func.count(Course.id)).where(Course.is_published.is_(True))
                ),
                "total_batches": await self._count(
                    select(func.count(Batch.id)).where(Batch.is_active.is_(True))
                ),
                "total_instructors": await self._count(
                    select(func.count(User.id)).where(
                        User.role == UserRole.INSTRUCTOR.value,
                        User.is_active.is_(True),
                    )
                ),
                "total_students": total_students,
            },
            "financial": {
                "total_revenue": total_revenue,
                **by_type,
                "average_revenue_per_student": _avg(total_revenue, paying_students),
            },
            "engagement": {
                "average_session_attendance": sessions["attendance_rate"],
                "assignment_submission_rate": submissions["submission_rate"],
                "doubt_resolution_rate": doubts["resolution_rate"],
                "average_progress": await self._average_progress(),
                "active_students_percentage": min(
                    100.0, _rate(await self._recently_active_students(now), total_students)
                ),
                "overall_engagement": self.overall_engagement(
                    sessions["attendance_rate"],
                    material_completion,
                    submissions["submission_rate"],
                    doubts["participation_rate"],
                ),
            },
            "course_performance": await self._course_performance(start, end),
            "time_range": time_range.value,
            "calculated_at": now,
        }

    async def _course_performance(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        batch_count = (
            select(func.count(Batch.id)).where(Batch.course_id == Course.id).correlate(Course).scalar_subquery()
        )
        enrollment_count = (
            select(func.count(Enrollment.id))
            .where(
                Enrollment.course_id == Course.id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .correlate(Course)
            .scalar_subquery()
        )
        revenue = (
            select(func.coalesce(func.sum(Payment.amount), 0))
            .where(
                Payment.course_id == Course.id,
                Payment.status == TransactionStatus.COMPLETED.value,
                Payment.paid_at >= start,
                Payment.paid_at <= end,
            )
            .correlate(Course)
            .scalar_subquery()
        )

        rows = await self._db.execute(
            select(Course.id, Course.title, batch_count, enrollment_count, revenue).where(
                Course.is_published.is_(True)
            )
        )
        stats = [
            {
                "course_id": course_id,
                "title": title,
                "batches": batches,
                "enrollments": enrollments,
                "revenue": round(float(amount or 0), 2),
            }
            for course_id, title, batches, enrollments, amount in rows.all()
        ]
        stats.sort(key=lambda item: item["enrollments"], reverse=True)
        return stats

    async def _compute_batch_analytics(self, batch_id: str, time_range: TimeRange) -> dict[str, Any]:
        now = self._clock()
        start, end = time_range.window(now)

        row = (
            await self._db.execute(
                select(Batch, Course.title, User.full_name)
                .join(Course, Course.id == Batch.course_id)
                .join(User, User.id == Batch.instructor_id)
                .where(Batch.id == batch_id)
            )
        ).first()
        if row is None:
            raise NotFoundError(f"Batch not found: {batch_id}")
        batch, course_title, instructor_name = row

        enrolled = await self._active_enrollments_by_batch()
        active = enrolled.get(batch_id, 0)

        statuses = (
            await self._db.execute(
                select(Enrollment.status, func.count(Enrollment.id))
                .where(
                    Enrollment.batch_id == batch_id,
                    Enrollment.enrolled_at >= start,
                    Enrollment.enrolled_at <= end,
                )
                .group_by(Enrollment.status)
            )
        ).all()
        by_status = dict(statuses)

        payments = await self._payment_rows(start, end, batch_id=batch_id)
        payment_total = sum(float(p.amount) for p in payments)

        all_sessions = (
            await self._db.execute(
                select(LiveSession.status, func.count(LiveSession.id))
                .where(
                    LiveSession.batch_id == batch_id,
                    LiveSession.scheduled_start >= start,
                    LiveSession.scheduled_start <= end,
                )
                .group_by(LiveSession.status)
            )
        ).all()
        session_statuses = dict(all_sessions)
        sessions = await self._session_metrics(start, end, enrolled, batch_id=batch_id)
        submissions = await self._submission_metrics(start, end, enrolled, batch_id=batch_id)
        doubts = await self._doubt_metrics(start, end, active, batch_id=batch_id)

        return {
            "batch_info": {
                "id": batch.id,
                "name": batch.name,
                "course": course_title,
                "instructor": instructor_name,
                "start_date": ensure_utc(batch.start_date),
                "end_date": ensure_utc(batch.end_date),
                "current_students": batch.current_students,
                "max_students": batch.max_students,
                "occupancy_rate": round(batch.occupancy_rate, 2),
            },
            "enrollment": {
                "total": sum(by_status.values()),
                "active": by_status.get(EnrollmentStatus.ACTIVE.value, 0),
                "completed": by_status.get(EnrollmentStatus.COMPLETED.value, 0),
                "cancelled": by_status.get(EnrollmentStatus.CANCELLED.value, 0),
                "currently_active": active,
            },
            "financial": {
                "total": round(payment_total, 2),
                "count": len(payments),
                "full": round(sum(float(p.amount) for p in payments if p.payment_type == PaymentType.FULL.value), 2),
                "emi": round(sum(float(p.amount) for p in payments if p.payment_type == PaymentType.EMI.value), 2),
                "average": _avg(payment_total, len(payments)),
            },
            "engagement": {
                "sessions": {
                    **sessions,
                    "scheduled_in_window": sum(session_statuses.values()),
                    "completed": session_statuses.get(SessionStatus.COMPLETED.value, 0),
                    "cancelled": session_statuses.get(SessionStatus.CANCELLED.value, 0),
                },
                "assignments": submissions,
                "doubts": doubts,
            },
            "performance": await self._batch_performance(batch_id),
            "time_range": time_range.value,
            "calculated_at": now,
        }

    async def _batch_performance(self, batch_id: str) -> dict[str, Any]:
        records = (
            await self._db.execute(select(Progress).where(Progress.batch_id == batch_id))
        ).scalars().all()
        if not records:
            return {
                "average_progress": 0.0,
                "at_risk_count": 0,
                "at_risk_percentage": 0.0,
                "completion_rate": 0.0,
                "top_performer": None,
                "needs_attention": [],
            }

        at_risk = sum(1 for record in records if record.is_at_risk)
        completed = sum(1 for record in records if record.overall_progress >= COMPLETION_THRESHOLD)
        top = max(records, key=lambda record: record.overall_progress)
        lagging = sorted(
            (record for record in records if record.overall_progress < ATTENTION_THRESHOLD),
            key=lambda record: record.overall_progress,
        )[:ATTENTION_LIMIT]

        return {
            "average_progress": _avg(sum(record.overall_progress for record in records), len(records)),
            "at_risk_count": at_risk,
            "at_risk_percentage": _rate(at_risk, len(records)),
            "completion_rate": _rate(completed, len(records)),
            "top_performer": {"student_id": top.student_id, "progress": top.overall_progress},
            "needs_attention": [
                {
                    "student_id": record.student_id,
                    "progress": record.overall_progress,
                    "last_active": ensure_utc(record.last_active),
                }
                for record in lagging
            ],
        }

    async def _compute_course_analytics(self, course_id: str, time_range: TimeRange) -> dict[str, Any]:
        now = self._clock()
        start, end = time_range.window(now)

        course = await self._db.get(Course, course_id)
        if course is None:
            raise NotFoundError(f"Course not found: {course_id}")

        batches = (
            await self._db.execute(select(Batch).where(Batch.course_id == course_id))
        ).scalars().all()

        enrollments = (
            await self._db.execute(
                select(Enrollment.batch_id, Enrollment.enrolled_at).where(
                    Enrollment.course_id == course_id,
                    Enrollment.enrolled_at >= start,
                    Enrollment.enrolled_at <= end,
                )
            )
        ).all()
        per_batch: dict[str, int] = defaultdict(int)
        per_month: dict[tuple[int, int], int] = defaultdict(int)
        for batch_id, enrolled_at in enrollments:
            per_batch[batch_id] += 1
            enrolled_at = ensure_utc(enrolled_at)
            per_month[(enrolled_at.year, enrolled_at.month)] += 1  # type: ignore[union-attr]

        payments = await self._payment_rows(start, end, course_id=course_id)
        revenue_by_month: dict[tuple[int, int], dict[str, float]] = defaultdict(
            lambda: {"total_amount": 0.0, "count": 0}
        )
        for payment in payments:
            paid_at = ensure_utc(payment.paid_at)
            bucket = revenue_by_month[(paid_at.year, paid_at.month)]  # type: ignore[union-attr]
            bucket["total_amount"] += float(payment.amount)
            bucket["count"] += 1
        revenue_total = round(sum(float(p.amount) for p in payments), 2)

        active_students = (await self._active_enrollments_by_batch())
        course_active = sum(active_students.get(batch.id, 0) for batch in batches)

        batch_stats = sorted(
            (
                {
                    "batch_id": batch.id,
                    "name": batch.name,
                    "start_date": ensure_utc(batch.start_date),
                    "end_date": ensure_utc(batch.end_date),
                    "current_students": batch.current_students,
                    "max_students": batch.max_students,
                    "occupancy_rate": round(batch.occupancy_rate, 2),
                    "is_active": batch.is_active,
                }
                for batch in batches
            ),
            key=lambda item: item["occupancy_rate"],
            reverse=True,
        )

        doubts = await self._doubt_metrics(start, end, course_active, course_id=course_id)

        return {
            "course_info": {
                "id": course.id,
                "title": course.title,
                "fee": course.fee,
                "emi_amount": course.emi_amount,
                "duration_weeks": course.duration_weeks,
                "is_published": course.is_published,
            },
            "enrollment": {
                "total": len(enrollments),
                "by_batch": [
                    {"batch_id": batch.id, "batch_name": batch.name, "enrollments": per_batch.get(batch.id, 0)}
                    for batch in batches
                ],
                "trend": [
                    {"year": year, "month": month, "count": per_month[(year, month)]}
                    for year, month in sorted(per_month)
                ],
            },
            "financial": {
                "total": revenue_total,
                "monthly": [
                    {
                        "year": year,
                        "month": month,
                        "total_amount": round(revenue_by_month[(year, month)]["total_amount"], 2),
                        "count": int(revenue_by_month[(year, month)]["count"]),
                    }
                    for year, month in sorted(revenue_by_month)
                ],
                "average": _avg(revenue_total, len(revenue_by_month)),
            },
            "batches": {
                "total": len(batches),
                "active": sum(1 for batch in batches if batch.is_active),
                "completed": sum(1 for batch in batches if batch.has_ended(now)),
                "upcoming": sum(1 for batch in batches if not batch.has_started(now)),
                "average_occupancy": _avg(sum(batch.occupancy_rate for batch in batches), len(batches)),
                "details": batch_stats,
            },
            "support": {
                "total_doubts": doubts["total_doubts"],
                "resolution_rate": doubts["resolution_rate"],
                "instructor_response_rate": doubts["instructor_response_rate"],
                "average_replies": doubts["average_replies"],
            },
            "time_range": time_range.value,
            "calculated_at": now,
        }

    async def _compute_payment_report(self, time_range: TimeRange) -> dict[str, Any]:
        now = self._clock()
        start, end = time_range.window(now)

        payments = await self._payment_rows(start, end)

        groups: dict[tuple[str, int, int], dict[str, Any]] = {}
        for payment in payments:
            paid_at = ensure_utc(payment.paid_at)
            key = (payment.payment_type, paid_at.year, paid_at.month)  # type: ignore[union-attr]
            group = groups.setdefault(
                key,
                {
                    "payment_type": payment.payment_type,
                    "year": key[1],
                    "month": key[2],
                    "total_amount": 0.0,
                    "count": 0,
                },
            )
            group["total_amount"] += float(payment.amount)
            group["count"] += 1

        breakdown = sorted(groups.values(), key=lambda group: (group["year"], group["month"], group["payment_type"]))
        for group in breakdown:
            group["total_amount"] = round(group["total_amount"], 2)

        full_amount = sum(g["total_amount"] for g in breakdown if g["payment_type"] == PaymentType.FULL.value)
        full_count = sum(g["count"] for g in breakdown if g["payment_type"] == PaymentType.FULL.value)
        emi_amount = sum(g["total_amount"] for g in breakdown if g["payment_type"] == PaymentType.EMI.value)
        emi_count = sum(g["count"] for g in breakdown if g["payment_type"] == PaymentType.EMI.value)
        total_amount = round(full_amount + emi_amount, 2)
        total_count = full_count + emi_count

        return {
            "summary": {
                "total_amount": total_amount,
                "total_count": total_count,
                "full_payment": {
                    "amount": round(full_amount, 2),
                    "count": full_count,
                    "percentage": _rate(full_amount, total_amount),
                },
                "emi_payment": {
                    "amount": round(emi_amount, 2),
                    "count": emi_count,
                    "percentage": _rate(emi_amount, total_amount),
                },
                "average_payment": _avg(total_amount, total_count),
            },
            "monthly_breakdown": breakdown,
            "time_range": time_range.value,
            "calculated_at": now,
        }

    async def _compute_student_engagement(self, time_range: TimeRange) -> dict[str, Any]:
        now = self._clock()
        start, end = time_range.window(now)

        enrolled = await self._active_enrollments_by_batch()
        active_students = len(await self._active_student_ids())

        sessions = await self._session_metrics(start, end, enrolled)
        submissions = await self._submission_metrics(start, end, enrolled)
        submissions.pop("assignments")
        doubts = await self._doubt_metrics(start, end, active_students)
        material_completion = await self._average_material_completion()

        total_users = await self._count(select(func.count(User.id)).where(User.is_active.is_(True)))
        recently_active = await self._recently_active_students(now)

        return {
            "session_attendance": sessions,
            "material_completion": {
                "total_materials": await self._count(
                    select(func.count(LearningMaterial.id)).where(
                        LearningMaterial.is_published.is_(True),
                        LearningMaterial.created_at >= start,
                        LearningMaterial.created_at <= end,
                    )
                ),
                "average_completion_rate": material_completion,
            },
            "assignment_submission": submissions,
            "doubt_participation": doubts,
            "active_users": {
                "total_users": total_users,
                "active_users": recently_active,
                "new_students": await self._count(
                    select(func.count(User.id)).where(
                        User.role == UserRole.STUDENT.value,
                        User.created_at >= start,
                        User.created_at <= end,
                    )
                ),
                "active_percentage": min(100.0, _rate(recently_active, total_users)),
            },
            "overall_engagement": self.overall_engagement(
                sessions["attendance_rate"],
                material_completion,
                submissions["submission_rate"],
                doubts["participation_rate"],
            ),
            "time_range": time_range.value,
            "calculated_at": now,
        }
