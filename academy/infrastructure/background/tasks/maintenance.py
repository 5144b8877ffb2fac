# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Maintenance background tasks for Academy.

Each actor wraps an async executor that takes an open session, so the
executors can be awaited directly from tests and scripts.

Actors:
    - cleanup_expired_tokens: Expired tokens, blacklist rows and lockouts
    - close_stale_doubts: Close answered doubts with no recent activity
    - recalculate_batch_progress: Recalculate every student in a batch
    - recalculate_active_batches: Fan out recalculation to running batches
"""

import logging
from typing import Any

import dramatiq
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config import get_settings
from academy.domains.auth.jwt import JWTManager
from academy.domains.auth.token_service import TokenService
from academy.domains.doubt.service import DoubtService
from academy.domains.progress.service import ProgressService
from academy.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from academy.infrastructure.background.tasks.base import (
    get_worker_sessionmaker,
    run_async,
    worker_session,
)
from academy.infrastructure.cache.store import DatabaseCache
from academy.infrastructure.database.models import Batch
from academy.utils.datetime import utc_now

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


# ========== Executors ==========


async def execute_token_cleanup(session: AsyncSession) -> dict[str, Any]:
    """Delete expired refresh tokens and blacklist entries, lift lockouts."""
    jwt_settings = get_settings().jwt
    service = TokenService(session, JWTManager(jwt_settings), jwt_settings)
    result = await service.cleanup_expired()
    return result.to_dict()


async def execute_stale_doubt_cleanup(session: AsyncSession, days: int) -> dict[str, Any]:
    closed = await DoubtService(session).close_stale_doubts(days)
    return {"closed": closed, "days": days}


async def execute_batch_recalculation(session: AsyncSession, batch_id: str) -> dict[str, Any]:
    result = await ProgressService(session).calculate_batch(batch_id)
    return result.to_dict()


async def list_running_batches(session: AsyncSession) -> list[str]:
    """IDs of active batches that have started and not yet ended."""
    now = utc_now()
    result = await session.execute(
        select(Batch.id).where(
            Batch.is_active.is_(True),
            Batch.start_date <= now,
            Batch.end_date >= now,
        )
    )
    return list(result.scalars().all())


# ========== Actors ==========


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=2,
    time_limit=300000,  # 5 minutes
    priority=Priority.NORMAL,
)
def cleanup_expired_tokens() -> dict[str, Any]:
    """Periodic token cleanup.

    Also purges expired analytics cache rows when the cache lives in the
    database.
    """

    async def _execute() -> dict[str, Any]:
        async with worker_session() as session:
            stats = await execute_token_cleanup(session)

        if get_settings().cache.backend == "database":
            stats["cache_entries_purged"] = await DatabaseCache(get_worker_sessionmaker()).purge_expired()
        return stats

    try:
        result = run_async(_execute())
        logger.info("Token cleanup job completed: %s", result)
        return result
    except Exception as e:
        logger.error("Token cleanup job failed: %s", e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=2,
    time_limit=300000,
    priority=Priority.LOW,
)
def close_stale_doubts(days: int | None = None) -> dict[str, Any]:
    """Close answered doubts untouched for SCHEDULER_STALE_DOUBT_DAYS."""
    window = days or get_settings().scheduler.stale_doubt_days

    async def _execute() -> dict[str, Any]:
        async with worker_session() as session:
            return await execute_stale_doubt_cleanup(session, window)

    try:
        return run_async(_execute())
    except Exception as e:
        logger.error("Stale doubt job failed: %s", e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=1,
    time_limit=600000,  # 10 minutes
    priority=Priority.NORMAL,
)
def recalculate_batch_progress(batch_id: str) -> dict[str, Any]:
    """Recalculate progress for every active student in a batch."""

    async def _execute() -> dict[str, Any]:
        async with worker_session() as session:
            return await execute_batch_recalculation(session, batch_id)

    try:
        result = run_async(_execute())
        logger.info(
            "Batch %s recalculated: %d succeeded, %d failed",
            batch_id,
            result["succeeded"],
            result["failed"],
        )
        return result
    except Exception as e:
        logger.error("Batch recalculation failed for %s: %s", batch_id, e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=1,
    time_limit=60000,
    priority=Priority.LOW,
)
def recalculate_active_batches() -> dict[str, Any]:
    """Queue a recalculation for each running batch."""

    async def _execute() -> list[str]:
        async with worker_session() as session:
            return await list_running_batches(session)

    batch_ids = run_async(_execute())
    for batch_id in batch_ids:
        recalculate_batch_progress.send(batch_id)

    logger.info("Queued progress recalculation for %d batches", len(batch_ids))
    return {"batch_count": len(batch_ids)}


def get_maintenance_actors() -> list[dramatiq.Actor]:
    return [
        cleanup_expired_tokens,
        close_stale_doubts,
        recalculate_batch_progress,
        recalculate_active_batches,
    ]
