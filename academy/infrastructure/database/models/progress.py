# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per student, per batch progress snapshot.

Derived fields (overall_progress, risk_factors, is_at_risk) are written by
academy.domains.progress.metrics.apply_derived_fields before every save.
JSON list columns are replaced, never mutated in place, so the ORM sees
every change.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)


class MaterialStatus(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    COMPLETED = "completed"
    REVIEWED = "reviewed"


class AttendanceStatus(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"
    LATE = "late"
    EXCUSED = "excused"


class AssignmentProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    SUBMITTED = "submitted"
    GRADED = "graded"


class Progress(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Completion and risk profile of one student in one batch."""

    __tablename__ = "progress"
    __table_args__ = (
        UniqueConstraint("student_id", "batch_id", name="uq_progress_student_batch"),
    )

    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)

    # Per-item tracking
    material_progress: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    session_attendance: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    assignment_progress: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Counts
    total_materials: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_materials: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attended_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_assignments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submitted_assignments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    graded_assignments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Percentages
    material_completion_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    attendance_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    assignment_completion_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overall_progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, index=True)

    # Risk
    risk_factors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_at_risk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_risk_assessment: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Activity
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_active: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_calculated: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @classmethod
    def new(cls, student_id: str, batch_id: str, course_id: str) -> "Progress":
        """Build an empty record with every counter initialised.

        Column defaults only apply at INSERT, so in-memory records built for
        calculation need explicit starting values.
        """
        return cls(
            student_id=student_id,
            batch_id=batch_id,
            course_id=course_id,
            material_progress=[],
            session_attendance=[],
            assignment_progress=[],
            total_materials=0,
            completed_materials=0,
            total_sessions=0,
            attended_sessions=0,
            total_assignments=0,
            submitted_assignments=0,
            graded_assignments=0,
            average_score=0.0,
            total_time_spent=0,
            material_completion_percentage=0.0,
            attendance_percentage=0.0,
            assignment_completion_percentage=0.0,
            overall_progress=0.0,
            risk_factors=[],
            is_at_risk=False,
            current_streak=0,
            longest_streak=0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Summary used by dashboards and API responses."""
        return {
            "student_id": self.student_id,
            "batch_id": self.batch_id,
            "course_id": self.course_id,
            "overall_progress": self.overall_progress,
            "material_completion_percentage": self.material_completion_percentage,
            "attendance_percentage": self.attendance_percentage,
            "assignment_completion_percentage": self.assignment_completion_percentage,
            "completed_materials": self.completed_materials,
            "total_materials": self.total_materials,
            "attended_sessions": self.attended_sessions,
            "total_sessions": self.total_sessions,
            "submitted_assignments": self.submitted_assignments,
            "graded_assignments": self.graded_assignments,
            "total_assignments": self.total_assignments,
            "average_score": self.average_score,
            "is_at_risk": self.is_at_risk,
            "risk_factors": list(self.risk_factors or []),
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active": self.last_active.isoformat() if self.last_active else None,
            "last_calculated": self.last_calculated.isoformat() if self.last_calculated else None,
        }
