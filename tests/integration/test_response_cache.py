# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the response cache middleware."""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from academy.api.middleware import AuthMiddleware, ResponseCacheMiddleware
from academy.api.middleware.response_cache import response_cache_key
from academy.domains.auth.jwt import JWTManager
from academy.infrastructure.cache.redis_client import RedisError
from academy.infrastructure.database.connection import DatabaseError


class UnavailableCache:
    async def get(self, key):
        raise RedisError("connection refused")

    async def set(self, key, value, ttl_seconds):
        raise RedisError("connection refused")


async def never_revoked(token: str) -> bool:
    return False


def build_app(jwt_manager: JWTManager, store, revocation_check=never_revoked) -> tuple[FastAPI, dict[str, int]]:
    calls = {"count": 0}
    app = FastAPI()
    app.add_middleware(
        ResponseCacheMiddleware,
        path_prefixes=["/api/v1/analytics"],
        ttl_seconds=120,
        store=store,
        revocation_check=revocation_check,
    )
    app.add_middleware(AuthMiddleware, jwt_manager=jwt_manager)

    @app.get("/api/v1/analytics/system")
    async def system(time_range: str = "30d") -> dict:
        calls["count"] += 1
        return {"time_range": time_range, "call": calls["count"]}

    @app.post("/api/v1/analytics/cache/clear")
    async def clear() -> dict:
        calls["count"] += 1
        return {"cleared": 0}

    @app.get("/api/v1/analytics/batches/{batch_id}")
    async def batch(batch_id: str) -> dict:
        calls["count"] += 1
        raise HTTPException(status_code=404, detail="Batch not found")

    @app.get("/api/v1/progress/me")
    async def progress() -> dict:
        calls["count"] += 1
        return {"call": calls["count"]}

    return app, calls


@pytest.fixture
def admin_headers(jwt_manager: JWTManager) -> dict[str, str]:
    return {"Authorization": f"Bearer {jwt_manager.create_access_token('admin-1', 'admin', 'admin@academy.test')}"}


@pytest.fixture
def student_headers(jwt_manager: JWTManager) -> dict[str, str]:
    return {"Authorization": f"Bearer {jwt_manager.create_access_token('student-1', 'student', 's@academy.test')}"}


class TestResponseCacheMiddleware:
    """Tests for ResponseCacheMiddleware."""

    def test_second_admin_request_is_served_from_cache(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        """Test that a repeated admin GET is answered without the endpoint."""
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        first = client.get("/api/v1/analytics/system?time_range=7d", headers=admin_headers)
        second = client.get("/api/v1/analytics/system?time_range=7d", headers=admin_headers)

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert first.json() == second.json() == {"time_range": "7d", "call": 1}
        assert calls["count"] == 1

        key = response_cache_key("/api/v1/analytics/system", "time_range=7d")
        assert key == "api:/api/v1/analytics/system?time_range=7d"
        assert memory_cache.data[key] == {"status_code": 200, "body": {"time_range": "7d", "call": 1}}
        assert memory_cache.ttls[key] == 120

    def test_query_string_is_part_of_key(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        client.get("/api/v1/analytics/system?time_range=7d", headers=admin_headers)
        response = client.get("/api/v1/analytics/system?time_range=90d", headers=admin_headers)

        assert response.headers["X-Cache"] == "MISS"
        assert calls["count"] == 2

    def test_non_admin_requests_bypass_cache(
        self, jwt_manager: JWTManager, memory_cache, student_headers: dict[str, str]
    ) -> None:
        """Test that only admins read or fill the cache."""
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        for headers in (student_headers, {}, student_headers):
            response = client.get("/api/v1/analytics/system", headers=headers)
            assert "X-Cache" not in response.headers

        assert calls["count"] == 3
        assert memory_cache.data == {}

    def test_cached_entry_not_served_to_students(
        self,
        jwt_manager: JWTManager,
        memory_cache,
        admin_headers: dict[str, str],
        student_headers: dict[str, str],
    ) -> None:
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        client.get("/api/v1/analytics/system", headers=admin_headers)
        response = client.get("/api/v1/analytics/system", headers=student_headers)

        assert "X-Cache" not in response.headers
        assert calls["count"] == 2

    def test_post_is_not_cached(self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]) -> None:
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        client.post("/api/v1/analytics/cache/clear", headers=admin_headers)
        client.post("/api/v1/analytics/cache/clear", headers=admin_headers)

        assert calls["count"] == 2
        assert memory_cache.data == {}

    def test_paths_outside_prefixes_are_not_cached(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        client.get("/api/v1/progress/me", headers=admin_headers)
        response = client.get("/api/v1/progress/me", headers=admin_headers)

        assert response.json() == {"call": 2}
        assert memory_cache.data == {}

    def test_error_responses_are_not_cached(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        app, calls = build_app(jwt_manager, memory_cache)
        client = TestClient(app)

        client.get("/api/v1/analytics/batches/missing", headers=admin_headers)
        response = client.get("/api/v1/analytics/batches/missing", headers=admin_headers)

        assert response.status_code == 404
        assert calls["count"] == 2
        assert memory_cache.data == {}

    def test_unavailable_store_falls_through(self, jwt_manager: JWTManager, admin_headers: dict[str, str]) -> None:
        """Test that cache failures never fail the request."""
        app, calls = build_app(jwt_manager, UnavailableCache())
        client = TestClient(app)

        first = client.get("/api/v1/analytics/system", headers=admin_headers)
        second = client.get("/api/v1/analytics/system", headers=admin_headers)

        assert first.status_code == second.status_code == 200
        assert second.headers["X-Cache"] == "MISS"
        assert calls["count"] == 2

    def test_revoked_token_is_not_served_from_cache(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        """Test that a hit is withheld once the token is on the blacklist."""
        revoked: set[str] = set()

        async def check(token: str) -> bool:
            return token in revoked

        app, calls = build_app(jwt_manager, memory_cache, revocation_check=check)
        client = TestClient(app)

        client.get("/api/v1/analytics/system?time_range=7d", headers=admin_headers)
        revoked.add(admin_headers["Authorization"].removeprefix("Bearer "))
        response = client.get("/api/v1/analytics/system?time_range=7d", headers=admin_headers)

        assert "X-Cache" not in response.headers
        assert response.json()["call"] == 2
        assert calls["count"] == 2

    def test_failed_blacklist_lookup_bypasses_cache(
        self, jwt_manager: JWTManager, memory_cache, admin_headers: dict[str, str]
    ) -> None:
        async def failing_check(token: str) -> bool:
            raise DatabaseError("Database not initialized. Call init_database() first.")

        app, calls = build_app(jwt_manager, memory_cache, revocation_check=failing_check)
        client = TestClient(app)

        client.get("/api/v1/analytics/system", headers=admin_headers)
        response = client.get("/api/v1/analytics/system", headers=admin_headers)

        assert response.status_code == 200
        assert "X-Cache" not in response.headers
        assert calls["count"] == 2
