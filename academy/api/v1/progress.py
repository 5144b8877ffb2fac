# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress API endpoints.

- GET /me - Student dashboard across enrollments
- POST /batches/{batch_id}/calculate - Recalculate a whole batch
- POST /batches/{batch_id}/students/{student_id}/calculate - Recalculate one student
- GET /batches/{batch_id}/dashboard - Instructor dashboard
- GET /batches/{batch_id}/at-risk - Students below a progress threshold
- PUT /batches/{batch_id}/materials/{material_id} - Student material progress
- PUT /batches/{batch_id}/sessions/{session_id}/attendance - Attendance status
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from academy.api.dependencies import AuthenticatedUser, InstructorOrAdmin, Progress, StudentUser
from academy.models.progress import AttendanceRequest, MaterialProgressRequest

router = APIRouter()


@router.get("/me")
async def my_dashboard(user: StudentUser, progress: Progress) -> dict[str, Any]:
    dashboard = await progress.student_dashboard(user.id)
    return dashboard.to_dict()


@router.post("/batches/{batch_id}/calculate")
async def calculate_batch(batch_id: str, user: InstructorOrAdmin, progress: Progress) -> dict[str, Any]:
    result = await progress.calculate_batch(batch_id)
    return result.to_dict()


@router.post("/batches/{batch_id}/students/{student_id}/calculate")
async def calculate_student(
    batch_id: str,
    student_id: str,
    user: AuthenticatedUser,
    progress: Progress,
) -> dict[str, Any]:
    """Recalculate one student. Students may only recalculate themselves."""
    if user.is_student and user.id != student_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot access another student's progress")

    record = await progress.calculate(student_id, batch_id)
    return record.to_dict()


@router.get("/batches/{batch_id}/dashboard")
async def batch_dashboard(batch_id: str, user: InstructorOrAdmin, progress: Progress) -> dict[str, Any]:
    instructor_id = None if user.is_admin else user.id
    dashboard = await progress.batch_dashboard(batch_id, instructor_id=instructor_id)
    return dashboard.to_dict()


@router.get("/batches/{batch_id}/at-risk")
async def at_risk_students(
    batch_id: str,
    user: InstructorOrAdmin,
    progress: Progress,
    threshold: float = Query(60.0, ge=0, le=100),
) -> dict[str, Any]:
    students = await progress.at_risk_students(batch_id, threshold)
    return {"batch_id": batch_id, "threshold": threshold, "students": [s.to_dict() for s in students]}


@router.put("/batches/{batch_id}/materials/{material_id}")
async def update_material(
    batch_id: str,
    material_id: str,
    data: MaterialProgressRequest,
    user: StudentUser,
    progress: Progress,
) -> dict[str, Any]:
    record = await progress.update_material_progress(
        user.id,
        batch_id,
        material_id,
        data.status.value,
        percent=data.percent,
        time_spent=data.time_spent,
    )
    return record.to_dict()


@router.put("/batches/{batch_id}/sessions/{session_id}/attendance")
async def record_attendance(
    batch_id: str,
    session_id: str,
    data: AttendanceRequest,
    user: InstructorOrAdmin,
    progress: Progress,
) -> dict[str, Any]:
    record = await progress.record_session_attendance(
        data.student_id,
        batch_id,
        session_id,
        data.status.value,
        duration=data.duration,
    )
    return record.to_dict()
