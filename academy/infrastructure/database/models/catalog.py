# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course catalog: courses and their scheduled batches."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)
from academy.utils.datetime import ensure_utc, utc_now

Money = Numeric(12, 2, asdecimal=False)


class Course(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A course offered on the platform.

    Attributes:
        fee: Full course fee.
        emi_amount: Monthly installment amount; None disables EMI.
    """

    __tablename__ = "courses"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fee: Mapped[float] = mapped_column(Money, nullable=False)
    emi_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    duration_weeks: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def emi_available(self) -> bool:
        return bool(self.emi_amount and self.emi_amount > 0)


class Batch(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One scheduled cohort of a course."""

    __tablename__ = "batches"

    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instructor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    max_students: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    current_students: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_full(self) -> bool:
        return self.current_students >= self.max_students

    def has_started(self, now: datetime | None = None) -> bool:
        return ensure_utc(self.start_date) <= (now or utc_now())

    def has_ended(self, now: datetime | None = None) -> bool:
        return ensure_utc(self.end_date) < (now or utc_now())

    @property
    def occupancy_rate(self) -> float:
        if not self.max_students:
            return 0.0
        return self.current_students / self.max_students * 100
