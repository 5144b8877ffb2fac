# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment service module.

This module handles a student's path into a batch:
- enroll: validate the batch, create a pending enrollment, open a payment
  order with the gateway and record a pending payment
- confirm_payment: verify the gateway signature, complete the payment and
  activate the enrollment
- cancel: cancel an enrollment before the batch starts

Confirmation emails are sent with send_quietly, so a mail failure never
undoes an enrollment or a payment.

Usage:
    from academy.domains.enrollment import EnrollmentService

    service = EnrollmentService(db, gateway, email_sender, settings.payment)
    checkout = await service.enroll(student_id, batch_id, PaymentMethod.EMI)
    enrollment = await service.confirm_payment(order_id, payment_id, signature)
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import PaymentSettings
from academy.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from academy.infrastructure.database.models import (
    Batch,
    Course,
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    TransactionStatus,
    User,
    UserRole,
)
from academy.infrastructure.integrations.email import EmailSender, send_quietly
from academy.infrastructure.integrations.payment import PaymentGateway, PaymentOrder
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class AlreadyEnrolledError(ConflictError):
    code = "already_enrolled"


class BatchFullError(ValidationError):
    code = "batch_full"


class PaymentVerificationError(ValidationError):
    code = "payment_verification_failed"


class EnrollmentNotFoundError(NotFoundError):
    code = "enrollment_not_found"


class EnrollmentCancelledError(ConflictError):
    code = "enrollment_cancelled"


@dataclass
class Checkout:
    """Pending enrollment with the order the student must pay."""

    enrollment: Enrollment
    payment: Payment
    order: PaymentOrder


def emi_schedule(total_amount: float, emi_amount: float | None) -> tuple[int, float]:
    """Return (months, installment) for an EMI plan.

    The last installment may be smaller than the others.

    Raises:
        ValidationError: If the course has no usable EMI amount.
    """
    if not emi_amount or emi_amount <= 0:
        raise ValidationError("EMI is not available for this course")
    installment = min(emi_amount, total_amount)
    return math.ceil(total_amount / installment), installment


class EnrollmentService:
    """Service for enrolling students and confirming their payments.

    Attributes:
        _db: Async database session. Every write operation commits.
        _gateway: Payment gateway for orders and signature checks.
        _email: Sender for confirmation emails.
        _settings: Payment configuration.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        email_sender: EmailSender,
        settings: PaymentSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._email = email_sender
        self._settings = settings
        self._clock = clock

    async def enroll(
        self,
        student_id: str,
        batch_id: str,
        payment_method: str = PaymentMethod.FULL.value,
    ) -> Checkout:
        """Create a pending enrollment and its first payment order.

        A previously cancelled enrollment in the same batch is reopened.

        Args:
            student_id: Enrolling student.
            batch_id: Target batch.
            payment_method: "full" or "emi".

        Returns:
            Checkout with the enrollment, the pending payment and the order.

        Raises:
            AuthorizationError: If the user is not a student.
            NotFoundError: If the batch is missing or inactive.
            BatchFullError: If the batch has no free seats.
            ValidationError: If the batch already started or the payment
                method is not available.
            AlreadyEnrolledError: If the student already holds an enrollment.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError as e:
            raise ValidationError(f"Unknown payment method: {payment_method}") from e

        student = await self._db.get(User, student_id)
        if student is None or student.role != UserRole.STUDENT.value:
            raise AuthorizationError("Only students can enroll in batches")

        batch = await self._db.get(Batch, batch_id)
        if batch is None or not batch.is_active:
            raise NotFoundError("Batch not found or not active")
        if batch.is_full:
            raise BatchFullError("Batch is already full")

        now = self._clock()
        if batch.has_started(now):
            raise ValidationError("Batch has already started")

        course = await self._db.get(Course, batch.course_id)
        if course is None:
            raise NotFoundError(f"Course not found: {batch.course_id}")

        total = float(course.fee)
        if method is PaymentMethod.EMI:
            emi_months, installment = emi_schedule(total, course.emi_amount)
            first_amount = installment
            payment_type = PaymentType.EMI
        else:
            emi_months, installment = 1, total
            first_amount = total
            payment_type = PaymentType.FULL

        enrollment = await self._reopen_or_create(student_id, batch, now)
        enrollment.payment_method = method.value
        enrollment.total_amount = total
        enrollment.emi_amount = installment
        enrollment.emi_months = emi_months
        enrollment.paid_amount = 0.0
        enrollment.status = EnrollmentStatus.PENDING.value
        enrollment.payment_status = PaymentStatus.PENDING.value
        enrollment.access_revoked = False
        enrollment.cancelled_at = None
        enrollment.enrolled_at = now
        enrollment.next_payment_due = None

        try:
            await self._db.flush()
        except IntegrityError as e:
            await self._db.rollback()
            raise AlreadyEnrolledError("Already enrolled in this batch") from e

        order = await self._gateway.create_order(first_amount, self._settings.currency, f"enrollment_{enrollment.id}")
        payment = Payment(
            enrollment_id=enrollment.id,
            student_id=student_id,
            batch_id=batch.id,
            course_id=course.id,
            amount=first_amount,
            currency=self._settings.currency,
            payment_type=payment_type.value,
            emi_number=1,
            status=TransactionStatus.PENDING.value,
            gateway_order_id=order.order_id,
        )
        self._db.add(payment)
        await self._db.commit()

        logger.info(
            "Enrollment created: student=%s, batch=%s, method=%s, first_payment=%.2f",
            student_id,
            batch.id,
            method.value,
            first_amount,
        )

        await send_quietly(
            self._email,
            student.email,
            f"Enrollment Confirmation - {course.title}",
            (
                f"<h2>Enrollment Confirmation</h2>"
                f"<p>Hello {student.full_name},</p>"
                f"<p>Your enrollment in <strong>{course.title}</strong> batch "
                f"<strong>{batch.name}</strong> has been initiated.</p>"
                f"<p>Amount due: {first_amount:.2f} {self._settings.currency}</p>"
                f"<p>Please complete your payment to activate your enrollment.</p>"
            ),
        )

        return Checkout(enrollment=enrollment, payment=payment, order=order)

    async def _reopen_or_create(self, student_id: str, batch: Batch, now: datetime) -> Enrollment:
        result = await self._db.execute(
            select(Enrollment).where(
                Enrollment.student_id == student_id,
                Enrollment.batch_id == batch.id,
            )
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            if existing.status != EnrollmentStatus.CANCELLED.value:
                raise AlreadyEnrolledError("Already enrolled in this batch")
            logger.info("Reopening cancelled enrollment %s", existing.id)
            return existing

        enrollment = Enrollment(
            student_id=student_id,
            batch_id=batch.id,
            course_id=batch.course_id,
            total_amount=0.0,
            enrolled_at=now,
        )
        self._db.add(enrollment)
        return enrollment

    async def confirm_payment(self, order_id: str, payment_id: str, signature: str) -> Enrollment:
        """Complete a payment from a verified gateway callback.

        Idempotent for an already completed payment. A callback for a
        cancelled enrollment or a batch that filled up in the meantime is
        rejected and the payment is marked failed for a manual refund.

        Raises:
            PaymentVerificationError: If the signature does not match.
            NotFoundError: If no payment exists for the order.
            EnrollmentCancelledError: If the enrollment was cancelled.
            BatchFullError: If no seat is left for a new activation.
        """
        if not await self._gateway.verify(order_id, payment_id, signature):
            logger.warning("Payment signature mismatch for order %s", order_id)
            raise PaymentVerificationError("Payment verification failed")

        result = await self._db.execute(select(Payment).where(Payment.gateway_order_id == order_id))
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError("Payment record not found")

        enrollment = await self._db.get(Enrollment, payment.enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment not found: {payment.enrollment_id}")

        if payment.status == TransactionStatus.COMPLETED.value:
            return enrollment

        if (
            payment.status == TransactionStatus.FAILED.value
            or enrollment.status == EnrollmentStatus.CANCELLED.value
        ):
            await self._reject_payment(payment, payment_id, "enrollment cancelled")
            raise EnrollmentCancelledError(
                "Enrollment was cancelled before the payment completed",
                details={"order_id": order_id, "enrollment_id": enrollment.id},
            )

        was_active = enrollment.status == EnrollmentStatus.ACTIVE.value
        if not was_active:
            seat = await self._db.execute(
                update(Batch)
                .where(
                    Batch.id == enrollment.batch_id,
                    Batch.current_students < Batch.max_students,
                )
                .values(current_students=Batch.current_students + 1)
                .execution_options(synchronize_session=False)
            )
            if seat.rowcount == 0:
                await self._reject_payment(payment, payment_id, "batch full")
                raise BatchFullError(
                    "Batch is full",
                    details={"order_id": order_id, "batch_id": enrollment.batch_id},
                )

        now = self._clock()
        payment.status = TransactionStatus.COMPLETED.value
        payment.gateway_payment_id = payment_id
        payment.paid_at = now

        enrollment.paid_amount = round((enrollment.paid_amount or 0.0) + payment.amount, 2)
        if enrollment.paid_amount >= enrollment.total_amount:
            enrollment.payment_status = PaymentStatus.PAID.value
            enrollment.next_payment_due = None
        else:
            enrollment.payment_status = PaymentStatus.PARTIALLY_PAID.value
            enrollment.next_payment_due = now + timedelta(days=self._settings.emi_interval_days)
        enrollment.status = EnrollmentStatus.ACTIVE.value

        await self._db.commit()

        logger.info(
            "Payment completed: order=%s, enrollment=%s, paid=%.2f/%.2f",
            order_id,
            enrollment.id,
            enrollment.paid_amount,
            enrollment.total_amount,
        )

        student = await self._db.get(User, enrollment.student_id)
        if student is not None:
            await send_quietly(
                self._email,
                student.email,
                "Payment Successful",
                (
                    f"<h2>Payment Successful!</h2>"
                    f"<p>Hello {student.full_name},</p>"
                    f"<p>Your payment of {payment.amount:.2f} {payment.currency} has been completed.</p>"
                    f"<p>Your enrollment is now active.</p>"
                ),
            )

        return enrollment

    async def _reject_payment(self, payment: Payment, payment_id: str, reason: str) -> None:
        payment.status = TransactionStatus.FAILED.value
        payment.gateway_payment_id = payment_id
        await self._db.commit()
        logger.warning(
            "Rejected payment %s for order %s (%s); refund required",
            payment_id,
            payment.gateway_order_id,
            reason,
        )

    async def cancel(self, enrollment_id: str, user_id: str) -> Enrollment:
        """Cancel an enrollment before its batch starts.

        Students may cancel their own enrollments; admins may cancel any.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist.
            AuthorizationError: If the user may not cancel it.
            ValidationError: If the batch has started.
        """
        enrollment = await self._db.get(Enrollment, enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment not found: {enrollment_id}")

        user = await self._db.get(User, user_id)
        is_admin = user is not None and user.role in (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value)
        if enrollment.student_id != user_id and not is_admin:
            raise AuthorizationError("Not authorized to cancel this enrollment")

        if enrollment.status == EnrollmentStatus.CANCELLED.value:
            return enrollment

        batch = await self._db.get(Batch, enrollment.batch_id)
        now = self._clock()
        if batch is not None and batch.has_started(now):
            raise ValidationError("Cannot cancel enrollment after batch has started")

        was_active = enrollment.status == EnrollmentStatus.ACTIVE.value
        enrollment.status = EnrollmentStatus.CANCELLED.value
        enrollment.payment_status = PaymentStatus.CANCELLED.value
        enrollment.cancelled_at = now
        enrollment.next_payment_due = None

        if batch is not None and was_active:
            batch.current_students = max(0, batch.current_students - 1)

        # Late callbacks for these orders are rejected
        await self._db.execute(
            update(Payment)
            .where(
                Payment.enrollment_id == enrollment.id,
                Payment.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.FAILED.value)
        )

        await self._db.commit()

        logger.info("Enrollment cancelled: %s by %s", enrollment.id, user_id)
        return enrollment
