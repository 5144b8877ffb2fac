# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment and payment schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class EnrollRequest(BaseModel):
    batch_id: str
    payment_method: Literal["full", "emi"] = "full"


class PaymentCallbackRequest(BaseModel):
    order_id: str
    payment_id: str
    signature: str


class EnrollmentInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    batch_id: str
    course_id: str
    payment_method: str
    status: str
    payment_status: str
    total_amount: float
    paid_amount: float
    emi_amount: float | None = None
    emi_months: int | None = None
    next_payment_due: datetime | None = None


class OrderInfo(BaseModel):
    order_id: str
    amount: int
    currency: str
    receipt: str


class CheckoutResponse(BaseModel):
    enrollment: EnrollmentInfo
    order: OrderInfo
    payment_id: str
