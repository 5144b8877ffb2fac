# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment domain.

Exports:
    EnrollmentService: Enroll, confirm payment and cancel.
    Checkout: Pending enrollment with its payment order.
"""

from academy.domains.enrollment.service import (
    AlreadyEnrolledError,
    BatchFullError,
    Checkout,
    EnrollmentCancelledError,
    EnrollmentNotFoundError,
    EnrollmentService,
    PaymentVerificationError,
    emi_schedule,
)

__all__ = [
    "EnrollmentService",
    "Checkout",
    "emi_schedule",
    "AlreadyEnrolledError",
    "BatchFullError",
    "EnrollmentCancelledError",
    "EnrollmentNotFoundError",
    "PaymentVerificationError",
]
