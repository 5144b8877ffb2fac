# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Batch learning content: materials, live sessions and assignments."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)
from academy.utils.datetime import utc_now


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class VideoProviderName(str, Enum):
    INHOUSE = "inhouse"
    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    LATE = "late"
    GRADED = "graded"
    RETURNED = "returned"


class LearningMaterial(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Video, document or link published to a batch."""

    __tablename__ = "learning_materials"

    batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    material_type: Mapped[str] = mapped_column(String(20), nullable=False, default="document")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class LiveSession(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A scheduled live class hosted by a video provider."""

    __tablename__ = "live_sessions"

    batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    instructor_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    scheduled_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatus.SCHEDULED.value)
    provider: Mapped[str] = mapped_column(String(20), nullable=False, default=VideoProviderName.INHOUSE.value)
    meeting_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    join_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    start_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def duration_minutes(self) -> int:
        return int((self.scheduled_end - self.scheduled_start).total_seconds() // 60)


class SessionAttendee(UUIDPrimaryKeyMixin, Base):
    """A student's presence in a live session."""

    __tablename__ = "session_attendees"
    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_session_attendees_session_student"),
    )

    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("live_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Assignment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Graded work with a deadline."""

    __tablename__ = "assignments"

    batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Submission(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A student's submission for an assignment."""

    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", name="uq_submissions_assignment_student"),
    )

    assignment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id"), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubmissionStatus.SUBMITTED.value)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    is_graded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marks_obtained: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
