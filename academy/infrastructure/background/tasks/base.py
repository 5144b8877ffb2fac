# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers process tasks on several threads. SQLAlchemy async
    engines and asyncpg connections are bound to the event loop that
    created them, so each worker thread keeps one persistent loop and one
    engine created on that loop.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Coroutine, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.core.config import get_settings
from academy.infrastructure.database.connection import build_engine, build_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    A new loop drops the thread's cached sessionmaker, since its engine
    belongs to the previous loop.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        _thread_local.sessionmaker = None

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def get_worker_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to the current worker thread's event loop."""
    sessionmaker = getattr(_thread_local, "sessionmaker", None)
    if sessionmaker is None:
        sessionmaker = build_sessionmaker(build_engine(get_settings()))
        _thread_local.sessionmaker = sessionmaker
    return sessionmaker


@asynccontextmanager
async def worker_session() -> AsyncIterator[AsyncSession]:
    """Open a session on the current worker thread's engine.

    Services commit their own work; anything left uncommitted when the
    block raises is rolled back.
    """
    async with get_worker_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task(batch_id: str):
            async def _process():
                async with worker_session() as session:
                    ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
