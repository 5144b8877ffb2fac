# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment API endpoints.

- POST / - Enroll the current student and open a payment order
- POST /payment/callback - Gateway callback, public
- POST /{enrollment_id}/cancel - Cancel before the batch starts
"""

import logging

from fastapi import APIRouter, status

from academy.api.dependencies import AuthenticatedUser, Enrollments, StudentUser
from academy.models.enrollment import (
    CheckoutResponse,
    EnrollmentInfo,
    EnrollRequest,
    OrderInfo,
    PaymentCallbackRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def enroll(data: EnrollRequest, user: StudentUser, enrollments: Enrollments) -> CheckoutResponse:
    checkout = await enrollments.enroll(user.id, data.batch_id, data.payment_method)
    return CheckoutResponse(
        enrollment=EnrollmentInfo.model_validate(checkout.enrollment),
        order=OrderInfo(
            order_id=checkout.order.order_id,
            amount=checkout.order.amount,
            currency=checkout.order.currency,
            receipt=checkout.order.receipt,
        ),
        payment_id=checkout.payment.id,
    )


@router.post("/payment/callback", response_model=EnrollmentInfo)
async def payment_callback(data: PaymentCallbackRequest, enrollments: Enrollments) -> EnrollmentInfo:
    enrollment = await enrollments.confirm_payment(data.order_id, data.payment_id, data.signature)
    return EnrollmentInfo.model_validate(enrollment)


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentInfo)
async def cancel(enrollment_id: str, user: AuthenticatedUser, enrollments: Enrollments) -> EnrollmentInfo:
    enrollment = await enrollments.cancel(enrollment_id, user.id)
    return EnrollmentInfo.model_validate(enrollment)
