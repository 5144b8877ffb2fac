# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Doubt housekeeping."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.exceptions import ValidationError
from academy.infrastructure.database.models import Doubt, DoubtStatus
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class DoubtService:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now) -> None:
        self._db = db
        self._clock = clock

    async def close_stale_doubts(self, days: int = 30) -> int:
        """Close answered doubts with no activity for the given number of days.

        Open, escalated and already resolved threads are left alone.

        Args:
            days: Inactivity window measured against updated_at.

        Returns:
            Number of doubts closed.

        Raises:
            ValidationError: If days is not positive.
        """
        if days <= 0:
            raise ValidationError("days must be positive", details={"days": days})

        now = self._clock()
        cutoff = now - timedelta(days=days)

        result = await self._db.execute(
            update(Doubt)
            .where(
                Doubt.status == DoubtStatus.ANSWERED.value,
                Doubt.resolved_at.is_(None),
                Doubt.updated_at < cutoff,
            )
            .values(status=DoubtStatus.CLOSED.value, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        await self._db.commit()

        closed = result.rowcount or 0
        if closed:
            logger.info("Closed %d stale doubts older than %d days", closed, days)
        return closed
