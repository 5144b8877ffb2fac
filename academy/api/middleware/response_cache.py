# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Response cache middleware.

Caches successful JSON GET responses for configured path prefixes in the
cache store under ``api:{path}?{query}``. Hits are answered without
calling the endpoint and carry ``X-Cache: HIT``.

Cached paths serve admin reports, so responses are only cached for and
served to admin users. Entries are shared between admins. A hit is only
served after the token has been checked against the blacklist; revoked
tokens fall through to the endpoint, whose auth dependency rejects them.

Example:
    app.add_middleware(
        ResponseCacheMiddleware,
        path_prefixes=["/api/v1/analytics"],
        ttl_seconds=300,
    )
"""

import json
import logging
from collections.abc import Iterable
from typing import Any, Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from academy.api.middleware.auth import get_current_user
from academy.core.config import get_settings
from academy.domains.auth.jwt import JWTManager
from academy.domains.auth.token_service import TokenService
from academy.infrastructure.cache.redis_client import RedisError
from academy.infrastructure.cache.store import CacheStore, get_cache
from academy.infrastructure.database.connection import DatabaseError, get_sessionmaker

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"

RevocationCheck = Callable[[str], Awaitable[bool]]


def response_cache_key(path: str, query: str) -> str:
    return f"api:{path}?{query}"


async def is_token_revoked(token: str) -> bool:
    """Look the access token up in the blacklist with a short-lived session."""
    settings = get_settings()
    async with get_sessionmaker()() as session:
        token_service = TokenService(session, JWTManager(settings.jwt), settings.jwt)
        return await token_service.is_blacklisted(token)


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Serve repeated GET requests from the cache store.

    Attributes:
        _prefixes: Path prefixes whose responses are cached.
        _ttl: Entry lifetime in seconds.
        _store: Cache store; defaults to the global store at request time.
        _is_revoked: Blacklist lookup run before a hit is served.
    """

    def __init__(
        self,
        app: ASGIApp,
        path_prefixes: Iterable[str],
        ttl_seconds: int,
        store: CacheStore | None = None,
        revocation_check: RevocationCheck = is_token_revoked,
    ) -> None:
        super().__init__(app)
        self._prefixes = tuple(path_prefixes)
        self._ttl = ttl_seconds
        self._store = store
        self._is_revoked = revocation_check

    def _get_store(self) -> CacheStore:
        return self._store or get_cache()

    def _is_cacheable(self, request: Request) -> bool:
        if request.method != "GET" or not request.url.path.startswith(self._prefixes):
            return False
        user = get_current_user(request)
        return user is not None and user.is_admin

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        if not self._is_cacheable(request):
            return await call_next(request)

        key = response_cache_key(request.url.path, request.url.query)
        store = self._get_store()

        try:
            cached = await store.get(key)
        except (SQLAlchemyError, RedisError) as e:
            logger.warning("Response cache read failed for %s: %s", key, e)
            cached = None

        if cached is not None and not await self._token_usable(request):
            return await call_next(request)

        if cached is not None:
            logger.debug("Response cache hit: %s", key)
            return JSONResponse(
                content=cached["body"],
                status_code=cached["status_code"],
                headers={CACHE_HEADER: "HIT"},
            )

        response = await call_next(request)
        content_type = response.headers.get("content-type", "")
        if not 200 <= response.status_code < 300 or not content_type.startswith("application/json"):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        await self._store_body(store, key, response.status_code, body)

        headers = dict(response.headers)
        headers.pop("content-length", None)
        headers[CACHE_HEADER] = "MISS"
        return Response(content=body, status_code=response.status_code, headers=headers)

    async def _token_usable(self, request: Request) -> bool:
        """Return False when a hit must not be served for this token.

        If the lookup itself fails the request goes to the endpoint, which
        runs the full auth dependency.
        """
        user = get_current_user(request)
        try:
            revoked = await self._is_revoked(user.token)
        except (SQLAlchemyError, DatabaseError) as e:
            logger.warning("Blacklist lookup failed, bypassing response cache: %s", e)
            return False
        if revoked:
            logger.info("Revoked token presented for cached response by user %s", user.id)
        return not revoked

    async def _store_body(self, store: CacheStore, key: str, status_code: int, body: bytes) -> None:
        try:
            payload: dict[str, Any] = {"status_code": status_code, "body": json.loads(body)}
        except ValueError:
            logger.debug("Skipping response cache for %s: body is not JSON", key)
            return

        try:
            await store.set(key, payload, self._ttl)
        except (SQLAlchemyError, RedisError) as e:
            logger.warning("Response cache write failed for %s: %s", key, e)
