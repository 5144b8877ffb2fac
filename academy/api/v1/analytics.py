# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics API endpoints (admin only).

Every report accepts ?time_range=24h|7d|30d|90d|1y and is cached by the
calculator. GET responses are additionally cached by the response-cache
middleware.
"""

from typing import Any

from fastapi import APIRouter, Query

from academy.api.dependencies import AdminUser, Analytics
from academy.domains.analytics import TimeRange
from academy.models.progress import ClearCacheRequest

router = APIRouter()

DEFAULT_CLEAR_PATTERNS = ["^analytics:", "^api:"]

TimeRangeQuery = Query(TimeRange.LAST_30_DAYS.value, description="24h, 7d, 30d, 90d or 1y")


@router.get("/system")
async def system_analytics(user: AdminUser, analytics: Analytics, time_range: str = TimeRangeQuery) -> dict[str, Any]:
    return await analytics.get_system_analytics(time_range)


@router.get("/batches/{batch_id}")
async def batch_analytics(
    batch_id: str,
    user: AdminUser,
    analytics: Analytics,
    time_range: str = TimeRangeQuery,
) -> dict[str, Any]:
    return await analytics.get_batch_analytics(batch_id, time_range)


@router.get("/courses/{course_id}")
async def course_analytics(
    course_id: str,
    user: AdminUser,
    analytics: Analytics,
    time_range: str = TimeRangeQuery,
) -> dict[str, Any]:
    return await analytics.get_course_analytics(course_id, time_range)


@router.get("/payments")
async def payment_report(user: AdminUser, analytics: Analytics, time_range: str = TimeRangeQuery) -> dict[str, Any]:
    return await analytics.get_payment_collection_report(time_range)


@router.get("/engagement")
async def student_engagement(user: AdminUser, analytics: Analytics, time_range: str = TimeRangeQuery) -> dict[str, Any]:
    return await analytics.get_student_engagement(time_range)


@router.post("/cache/clear")
async def clear_cache(data: ClearCacheRequest, user: AdminUser, analytics: Analytics) -> dict[str, Any]:
    """Invalidate cached reports and cached API responses."""
    patterns = data.patterns or DEFAULT_CLEAR_PATTERNS
    cleared = await analytics.clear_cache(patterns)
    return {"cleared": cleared, "patterns": patterns}
