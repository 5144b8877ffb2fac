# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking request schemas."""

from pydantic import BaseModel, Field

from academy.infrastructure.database.models import AttendanceStatus, MaterialStatus


class MaterialProgressRequest(BaseModel):
    status: MaterialStatus
    percent: float = Field(0.0, ge=0, le=100)
    time_spent: int = Field(0, ge=0, description="Minutes spent on the material")


class AttendanceRequest(BaseModel):
    student_id: str
    status: AttendanceStatus
    duration: int = Field(0, ge=0)


class ClearCacheRequest(BaseModel):
    patterns: list[str] | None = None
