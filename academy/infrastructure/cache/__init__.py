# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache infrastructure.

This package provides the TTL cache stores used for derived data and the
Redis client that backs the Redis store.

Example:
    from academy.infrastructure.cache import init_cache, get_cache

    await init_cache(settings)
    cache = get_cache()
    await cache.set("analytics:system:30d", payload, ttl_seconds=3600)
"""

from academy.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    close_redis,
    get_redis,
    init_redis,
)
from academy.infrastructure.cache.store import (
    CacheStore,
    DatabaseCache,
    RedisCache,
    cache_type_for_ttl,
    get_cache,
    init_cache,
    set_cache,
)

__all__ = [
    # Redis
    "RedisClient",
    "RedisError",
    "close_redis",
    "get_redis",
    "init_redis",
    # Stores
    "CacheStore",
    "DatabaseCache",
    "RedisCache",
    "cache_type_for_ttl",
    "get_cache",
    "init_cache",
    "set_cache",
]
