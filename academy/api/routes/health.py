# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoint."""

import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from academy import __version__
from academy.core.config import get_settings
from academy.infrastructure.background.scheduler import get_scheduler
from academy.infrastructure.database.connection import check_database_connection
from academy.utils.datetime import utc_now

router = APIRouter()

_server_start_time = time.time()


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or degraded")
    version: str
    environment: str
    uptime_seconds: int
    database: bool
    scheduler: dict[str, Any] = Field(description="Maintenance scheduler state and per-task run counts")
    checked_at: datetime


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    database_ok = await check_database_connection()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=__version__,
        environment=get_settings().environment,
        uptime_seconds=int(time.time() - _server_start_time),
        database=database_ok,
        scheduler=get_scheduler().get_stats(),
        checked_at=utc_now(),
    )
