# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for EnrollmentService.

Payments go through the offline gateway, which signs callbacks with the
same HMAC scheme hosted gateways use.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import PaymentSettings
from academy.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from academy.domains.enrollment.service import (
    AlreadyEnrolledError,
    BatchFullError,
    EnrollmentCancelledError,
    EnrollmentNotFoundError,
    EnrollmentService,
    PaymentVerificationError,
    emi_schedule,
)
from academy.infrastructure.database.models import Batch, Payment, User
from academy.infrastructure.integrations.email import LoggingEmailSender
from academy.infrastructure.integrations.payment import StubPaymentGateway


class BrokenEmailSender:
    async def send(self, to: str, subject: str, html_body: str) -> None:
        raise UpstreamError("SMTP error: connection refused", provider="smtp")


@pytest.fixture
def gateway(payment_settings: PaymentSettings) -> StubPaymentGateway:
    return StubPaymentGateway(payment_settings)


@pytest.fixture
def sender() -> LoggingEmailSender:
    return LoggingEmailSender()


@pytest.fixture
def service(
    db: AsyncSession,
    gateway: StubPaymentGateway,
    sender: LoggingEmailSender,
    payment_settings: PaymentSettings,
    clock,
) -> EnrollmentService:
    return EnrollmentService(db, gateway, sender, payment_settings, clock=clock)


@pytest.fixture
async def student(make_user) -> User:
    return await make_user(email="ana@academy.test", full_name="Ana")


@pytest.fixture
async def batch(make_user, make_course, make_batch) -> Batch:
    """A batch starting next week."""
    instructor = await make_user("instructor")
    course = await make_course()
    return await make_batch(course, instructor)


async def _pay(service: EnrollmentService, gateway: StubPaymentGateway, order_id: str, payment_id: str = "pay_1"):
    return await service.confirm_payment(order_id, payment_id, gateway.sign(order_id, payment_id))


class TestEmiSchedule:
    def test_even_split(self) -> None:
        assert emi_schedule(12000.0, 4000.0) == (3, 4000.0)

    def test_last_installment_may_be_smaller(self) -> None:
        assert emi_schedule(12000.0, 5000.0) == (3, 5000.0)

    def test_installment_capped_at_total(self) -> None:
        assert emi_schedule(3000.0, 4000.0) == (1, 3000.0)

    @pytest.mark.parametrize("emi_amount", [None, 0.0, -10.0])
    def test_no_emi_available(self, emi_amount: float | None) -> None:
        with pytest.raises(ValidationError):
            emi_schedule(12000.0, emi_amount)


class TestEnroll:
    """Tests for creating enrollments."""

    async def test_full_payment_checkout(
        self, service: EnrollmentService, sender: LoggingEmailSender, student: User, batch: Batch
    ) -> None:
        """Test that a full-payment enrollment opens an order for the whole fee."""
        checkout = await service.enroll(student.id, batch.id, "full")

        assert checkout.enrollment.status == "pending"
        assert checkout.enrollment.payment_status == "pending"
        assert checkout.enrollment.total_amount == 12000.0
        assert checkout.payment.amount == 12000.0
        assert checkout.payment.payment_type == "full"
        assert checkout.payment.status == "pending"
        assert checkout.order.amount == 1200000
        assert checkout.order.currency == "INR"
        assert checkout.order.order_id.startswith("order_")
        assert checkout.payment.gateway_order_id == checkout.order.order_id
        assert sender.sent == [("ana@academy.test", "Enrollment Confirmation - Python Foundations")]

    async def test_emi_checkout(self, service: EnrollmentService, student: User, batch: Batch) -> None:
        """Test that an EMI enrollment charges the first installment."""
        checkout = await service.enroll(student.id, batch.id, "emi")

        assert checkout.enrollment.emi_months == 3
        assert checkout.enrollment.emi_amount == 4000.0
        assert checkout.payment.amount == 4000.0
        assert checkout.payment.payment_type == "emi"
        assert checkout.payment.emi_number == 1

    async def test_already_enrolled(self, service: EnrollmentService, student: User, batch: Batch) -> None:
        await service.enroll(student.id, batch.id)

        with pytest.raises(AlreadyEnrolledError):
            await service.enroll(student.id, batch.id)

    async def test_full_batch(
        self, service: EnrollmentService, student: User, make_user, make_course, make_batch
    ) -> None:
        instructor = await make_user("instructor")
        course = await make_course()
        full = await make_batch(course, instructor, max_students=1, current_students=1)

        with pytest.raises(BatchFullError):
            await service.enroll(student.id, full.id)

    async def test_started_batch(self, service: EnrollmentService, student: User, running_batch: Batch) -> None:
        with pytest.raises(ValidationError, match="already started"):
            await service.enroll(student.id, running_batch.id)

    async def test_inactive_batch(
        self, service: EnrollmentService, student: User, make_user, make_course, make_batch
    ) -> None:
        instructor = await make_user("instructor")
        course = await make_course()
        closed = await make_batch(course, instructor, is_active=False)

        with pytest.raises(NotFoundError):
            await service.enroll(student.id, closed.id)

    async def test_only_students_enroll(self, service: EnrollmentService, make_user, batch: Batch) -> None:
        admin = await make_user("admin")

        with pytest.raises(AuthorizationError):
            await service.enroll(admin.id, batch.id)

    async def test_unknown_payment_method(self, service: EnrollmentService, student: User, batch: Batch) -> None:
        with pytest.raises(ValidationError):
            await service.enroll(student.id, batch.id, "crypto")

    async def test_course_without_emi(
        self, service: EnrollmentService, student: User, make_user, make_course, make_batch
    ) -> None:
        instructor = await make_user("instructor")
        course = await make_course(emi_amount=None)
        no_emi = await make_batch(course, instructor)

        with pytest.raises(ValidationError, match="EMI"):
            await service.enroll(student.id, no_emi.id, "emi")

    async def test_email_failure_does_not_block_enrollment(
        self,
        db: AsyncSession,
        gateway: StubPaymentGateway,
        payment_settings: PaymentSettings,
        student: User,
        batch: Batch,
    ) -> None:
        service = EnrollmentService(db, gateway, BrokenEmailSender(), payment_settings)

        checkout = await service.enroll(student.id, batch.id)

        assert checkout.enrollment.id is not None


class TestConfirmPayment:
    """Tests for gateway callbacks."""

    async def test_full_payment_activates_enrollment(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        db: AsyncSession,
        student: User,
        batch: Batch,
        clock,
    ) -> None:
        """Test that a verified full payment activates the enrollment and takes a seat."""
        checkout = await service.enroll(student.id, batch.id)

        enrollment = await _pay(service, gateway, checkout.order.order_id)

        assert enrollment.status == "active"
        assert enrollment.payment_status == "paid"
        assert enrollment.paid_amount == 12000.0
        assert enrollment.next_payment_due is None
        assert checkout.payment.status == "completed"
        assert checkout.payment.gateway_payment_id == "pay_1"
        assert checkout.payment.paid_at == clock.now
        await db.refresh(batch)
        assert batch.current_students == 1

    async def test_first_emi_is_partial(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        student: User,
        batch: Batch,
        clock,
    ) -> None:
        """Test that the first installment leaves a due date for the next one."""
        checkout = await service.enroll(student.id, batch.id, "emi")

        enrollment = await _pay(service, gateway, checkout.order.order_id)

        assert enrollment.status == "active"
        assert enrollment.payment_status == "partially_paid"
        assert enrollment.paid_amount == 4000.0
        assert enrollment.next_payment_due == clock.now + timedelta(days=30)

    async def test_confirmation_is_idempotent(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        db: AsyncSession,
        sender: LoggingEmailSender,
        student: User,
        batch: Batch,
    ) -> None:
        """Test that a repeated callback does not double count."""
        checkout = await service.enroll(student.id, batch.id)

        await _pay(service, gateway, checkout.order.order_id)
        enrollment = await _pay(service, gateway, checkout.order.order_id)

        assert enrollment.paid_amount == 12000.0
        await db.refresh(batch)
        assert batch.current_students == 1
        assert [subject for _, subject in sender.sent].count("Payment Successful") == 1

    async def test_bad_signature(
        self, service: EnrollmentService, db: AsyncSession, student: User, batch: Batch
    ) -> None:
        checkout = await service.enroll(student.id, batch.id)

        with pytest.raises(PaymentVerificationError):
            await service.confirm_payment(checkout.order.order_id, "pay_1", "forged")

        payment = (await db.execute(select(Payment))).scalar_one()
        assert payment.status == "pending"

    async def test_unknown_order(self, service: EnrollmentService, gateway: StubPaymentGateway) -> None:
        with pytest.raises(NotFoundError):
            await _pay(service, gateway, "order_missing")

    async def test_late_callback_for_cancelled_enrollment_is_rejected(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        db: AsyncSession,
        student: User,
        batch: Batch,
    ) -> None:
        """Test that paying after a cancel neither reactivates nor takes a seat."""
        checkout = await service.enroll(student.id, batch.id)
        await service.cancel(checkout.enrollment.id, student.id)

        with pytest.raises(EnrollmentCancelledError):
            await _pay(service, gateway, checkout.order.order_id)

        assert checkout.enrollment.status == "cancelled"
        payment = await db.get(Payment, checkout.payment.id, populate_existing=True)
        assert payment.status == "failed"
        assert payment.gateway_payment_id == "pay_1"
        await db.refresh(batch)
        assert batch.current_students == 0

    async def test_old_order_rejected_after_reopen(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        student: User,
        batch: Batch,
    ) -> None:
        first = await service.enroll(student.id, batch.id)
        await service.cancel(first.enrollment.id, student.id)
        second = await service.enroll(student.id, batch.id)

        with pytest.raises(EnrollmentCancelledError):
            await _pay(service, gateway, first.order.order_id)
        enrollment = await _pay(service, gateway, second.order.order_id, "pay_2")

        assert enrollment.status == "active"
        assert enrollment.paid_amount == 12000.0

    async def test_callback_does_not_overfill_batch(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        db: AsyncSession,
        make_user,
        student: User,
        batch: Batch,
    ) -> None:
        """Test that the last seat goes to the first confirmed payment."""
        batch.max_students = 1
        await db.commit()
        rival = await make_user()
        mine = await service.enroll(student.id, batch.id)
        theirs = await service.enroll(rival.id, batch.id)

        await _pay(service, gateway, mine.order.order_id)
        with pytest.raises(BatchFullError):
            await _pay(service, gateway, theirs.order.order_id, "pay_2")

        await db.refresh(batch)
        assert batch.current_students == 1
        assert theirs.enrollment.status == "pending"
        payment = await db.get(Payment, theirs.payment.id, populate_existing=True)
        assert payment.status == "failed"


class TestCancel:
    """Tests for cancelling enrollments."""

    async def test_student_cancels_pending_enrollment(
        self, service: EnrollmentService, student: User, batch: Batch, clock
    ) -> None:
        checkout = await service.enroll(student.id, batch.id)

        enrollment = await service.cancel(checkout.enrollment.id, student.id)

        assert enrollment.status == "cancelled"
        assert enrollment.payment_status == "cancelled"
        assert enrollment.cancelled_at == clock.now

    async def test_cancelling_active_enrollment_frees_seat(
        self,
        service: EnrollmentService,
        gateway: StubPaymentGateway,
        db: AsyncSession,
        student: User,
        batch: Batch,
    ) -> None:
        checkout = await service.enroll(student.id, batch.id)
        await _pay(service, gateway, checkout.order.order_id)
        await db.refresh(batch)

        await service.cancel(checkout.enrollment.id, student.id)

        assert batch.current_students == 0

    async def test_other_student_cannot_cancel(
        self, service: EnrollmentService, make_user, student: User, batch: Batch
    ) -> None:
        checkout = await service.enroll(student.id, batch.id)
        other = await make_user()

        with pytest.raises(AuthorizationError):
            await service.cancel(checkout.enrollment.id, other.id)

    async def test_admin_can_cancel(
        self, service: EnrollmentService, make_user, student: User, batch: Batch
    ) -> None:
        checkout = await service.enroll(student.id, batch.id)
        admin = await make_user("admin")

        enrollment = await service.cancel(checkout.enrollment.id, admin.id)

        assert enrollment.status == "cancelled"

    async def test_cannot_cancel_after_start(
        self, service: EnrollmentService, make_enrollment, student: User, running_batch: Batch
    ) -> None:
        enrollment = await make_enrollment(student, running_batch)

        with pytest.raises(ValidationError):
            await service.cancel(enrollment.id, student.id)

    async def test_unknown_enrollment(self, service: EnrollmentService, student: User) -> None:
        with pytest.raises(EnrollmentNotFoundError):
            await service.cancel("missing", student.id)

    async def test_cancelled_enrollment_can_be_reopened(
        self, service: EnrollmentService, student: User, batch: Batch
    ) -> None:
        """Test that enrolling again after cancelling reuses the enrollment."""
        first = await service.enroll(student.id, batch.id)
        await service.cancel(first.enrollment.id, student.id)

        second = await service.enroll(student.id, batch.id, "emi")

        assert second.enrollment.id == first.enrollment.id
        assert second.enrollment.status == "pending"
        assert second.enrollment.cancelled_at is None
        assert second.payment.id != first.payment.id
