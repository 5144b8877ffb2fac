# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""TTL key-value cache for derived data.

Two interchangeable stores implement the CacheStore protocol:
- DatabaseCache: rows in the ``analytics_cache`` table with a logical
  expiry checked on every read
- RedisCache: Redis keys with a physical TTL

Only the analytics calculator and the HTTP response-cache middleware use
this layer. Values must be JSON-compatible.

Example:
    from academy.infrastructure.cache import init_cache, get_cache

    await init_cache(settings)
    cache = get_cache()
    await cache.set("k", {"a": 1}, ttl_seconds=300)
    await cache.get("k")  # {"a": 1}
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.core.exceptions import ValidationError
from academy.infrastructure.cache.redis_client import RedisClient, get_redis, init_redis
from academy.infrastructure.database.models import CacheEntry, CacheType, generate_uuid
from academy.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from academy.core.config.settings import Settings

logger = logging.getLogger(__name__)

# Module-level state
_cache_store: Optional["CacheStore"] = None


@runtime_checkable
class CacheStore(Protocol):
    """Operations every cache backend provides."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def invalidate(self, key: str) -> int: ...

    async def invalidate_pattern(self, pattern: str) -> int: ...


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"Invalid cache key pattern: {pattern}", {"reason": str(e)}) from e


def _check_ttl(ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        raise ValidationError("Cache TTL must be positive", {"ttl_seconds": ttl_seconds})


def cache_type_for_ttl(ttl_seconds: int) -> CacheType:
    """Map a TTL onto the coarse lifetime class stored with each row."""
    if ttl_seconds < 3600 * 24:
        return CacheType.REALTIME
    if ttl_seconds < 3600 * 24 * 7:
        return CacheType.DAILY
    if ttl_seconds < 3600 * 24 * 30:
        return CacheType.WEEKLY
    return CacheType.MONTHLY


class DatabaseCache:
    """Cache backed by the ``analytics_cache`` table.

    Every operation runs in its own short session so a failing cache write
    never poisons the caller's unit of work.

    Attributes:
        _sessionmaker: Factory for the per-operation sessions.
        _clock: Returns the current time; replaceable in tests.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        async with self._sessionmaker() as session:
            result = await session.execute(select(CacheEntry).where(CacheEntry.key == key))
            entry = result.scalar_one_or_none()

        if entry is None:
            return None

        if ensure_utc(entry.expires_at) <= self._clock():
            return None

        return entry.data

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Upsert a value with ``expires_at = now + ttl``.

        Raises:
            ValidationError: If ttl_seconds is not positive.
        """
        _check_ttl(ttl_seconds)
        now = self._clock()

        async with self._sessionmaker() as session:
            insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
            stmt = insert(CacheEntry).values(
                id=generate_uuid(),
                key=key,
                data=value,
                cache_type=cache_type_for_ttl(ttl_seconds).value,
                expires_at=now + timedelta(seconds=ttl_seconds),
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["key"],
                set_={
                    "data": stmt.excluded["data"],
                    "cache_type": stmt.excluded["cache_type"],
                    "expires_at": stmt.excluded["expires_at"],
                    "updated_at": stmt.excluded["updated_at"],
                },
            )
            await session.execute(stmt)
            await session.commit()

    async def invalidate(self, key: str) -> int:
        """Delete one key. Returns the number of rows removed."""
        async with self._sessionmaker() as session:
            result = await session.execute(
                delete(CacheEntry)
                .where(CacheEntry.key == key)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount or 0

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a regular expression.

        Raises:
            ValidationError: If the pattern does not compile.
        """
        regex = _compile_pattern(pattern)

        async with self._sessionmaker() as session:
            result = await session.execute(select(CacheEntry.key))
            keys = [key for key in result.scalars().all() if regex.search(key)]
            if not keys:
                return 0

            deleted = await session.execute(
                delete(CacheEntry)
                .where(CacheEntry.key.in_(keys))
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.debug("Invalidated %d cache entries matching %s", len(keys), pattern)
        return deleted.rowcount or 0

    async def purge_expired(self) -> int:
        """Physically remove expired rows."""
        async with self._sessionmaker() as session:
            result = await session.execute(
                delete(CacheEntry)
                .where(CacheEntry.expires_at <= self._clock())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount or 0


class RedisCache:
    """Cache backed by Redis keys with native expiry."""

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    async def get(self, key: str) -> Any | None:
        return await self._client.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value with a physical TTL.

        Raises:
            ValidationError: If ttl_seconds is not positive.
        """
        _check_ttl(ttl_seconds)
        await self._client.set(key, value, expire_seconds=ttl_seconds)

    async def invalidate(self, key: str) -> int:
        return await self._client.delete(key)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a regular expression.

        Redis globs cannot express regular expressions, so keys are scanned
        and filtered client-side.
        """
        regex = _compile_pattern(pattern)
        keys = [key async for key in self._client.scan_keys() if regex.search(key)]
        return await self._client.delete(*keys)

    async def purge_expired(self) -> int:
        return 0


# ========== Module-level functions ==========


async def init_cache(
    settings: "Settings",
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
) -> "CacheStore":
    """Initialize the global cache store for the configured backend.

    Args:
        settings: Application settings.
        sessionmaker: Sessionmaker for the database backend. Defaults to the
            application sessionmaker.

    Returns:
        The initialized store.
    """
    global _cache_store

    if settings.cache.backend == "redis":
        await init_redis(settings)
        _cache_store = RedisCache(get_redis())
    else:
        if sessionmaker is None:
            from academy.infrastructure.database.connection import get_sessionmaker

            sessionmaker = get_sessionmaker()
        _cache_store = DatabaseCache(sessionmaker)

    logger.info("Cache store initialized (backend: %s)", settings.cache.backend)
    return _cache_store


def set_cache(store: Optional["CacheStore"]) -> None:
    """Replace the global cache store."""
    global _cache_store
    _cache_store = store


def get_cache() -> "CacheStore":
    """Get the global cache store.

    Raises:
        RuntimeError: If the cache has not been initialized.
    """
    if _cache_store is None:
        raise RuntimeError("Cache not initialized. Call init_cache() first.")
    return _cache_store
