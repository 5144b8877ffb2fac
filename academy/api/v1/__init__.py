# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    auth: Login, refresh, logout, password change and device sessions.
    progress: Progress calculation and dashboards.
    analytics: Admin reports and cache clearing.
    enrollments: Enrollment, payment callback and cancellation.
"""

from fastapi import APIRouter

from academy.api.v1 import analytics, auth, enrollments, progress

router = APIRouter(prefix="/api/v1")

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(progress.router, prefix="/progress", tags=["Progress"])
router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
router.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollments"])

__all__ = ["router"]
