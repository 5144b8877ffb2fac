# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollments and the payments made against them."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)
from academy.infrastructure.database.models.catalog import Money
from academy.utils.datetime import utc_now


class PaymentMethod(str, Enum):
    FULL = "full"
    EMI = "emi"


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class PaymentStatus(str, Enum):
    """Payment state of an enrollment as a whole."""

    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    FULL = "full"
    EMI = "emi"
    REFUND = "refund"
    LATE_FEE = "late_fee"


class TransactionStatus(str, Enum):
    """State of a single payment transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Enrollment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A student's registration in a batch.

    A student holds at most one enrollment row per batch; a cancelled row
    is reopened on re-enrollment.
    """

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("student_id", "batch_id", name="uq_enrollments_student_batch"),
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
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False, default=PaymentMethod.FULL.value)
    total_amount: Mapped[float] = mapped_column(Money, nullable=False)
    emi_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    emi_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    paid_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EnrollmentStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    next_payment_due: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    access_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enrolled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE.value and not self.access_revoked

    @property
    def remaining_amount(self) -> float:
        return max(0.0, (self.total_amount or 0.0) - (self.paid_amount or 0.0))


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A single payment transaction."""

    __tablename__ = "payments"

    enrollment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id"), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    payment_type: Mapped[str] = mapped_column(String(10), nullable=False)
    emi_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TransactionStatus.PENDING.value)
    gateway_order_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
