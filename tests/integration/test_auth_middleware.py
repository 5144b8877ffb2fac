# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the authentication middleware.

Tests the middleware in isolation from the database.
"""

from types import SimpleNamespace

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from academy.api.middleware.auth import AuthMiddleware, CurrentUser, extract_bearer_token, get_current_user
from academy.domains.auth.jwt import JWTManager, TokenPayload


@pytest.fixture
def app(jwt_manager: JWTManager) -> FastAPI:
    """App echoing whoever the middleware authenticated."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware, jwt_manager=jwt_manager)

    @app.get("/health")
    async def health(request: Request) -> dict:
        return {"status": "ok", "user": get_current_user(request)}

    @app.get("/api/v1/progress/me")
    async def me(request: Request) -> dict:
        user = get_current_user(request)
        if user is None:
            return {"user": None}
        return {"user": {"id": user.id, "role": user.role, "email": user.email}}

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


class TestAuthMiddleware:
    """Tests for AuthMiddleware."""

    def test_public_path_bypasses_auth(self, client: TestClient) -> None:
        """Test that public paths are served without a token."""
        response = client.get("/health", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "user": None}

    def test_valid_token_sets_user(self, client: TestClient, jwt_manager: JWTManager) -> None:
        """Test that a valid access token populates request.state.user."""
        token = jwt_manager.create_access_token("user-1", "student", "ana@academy.test")

        response = client.get("/api/v1/progress/me", headers={"Authorization": f"Bearer {token}"})

        assert response.json() == {"user": {"id": "user-1", "role": "student", "email": "ana@academy.test"}}

    def test_missing_token_leaves_user_empty(self, client: TestClient) -> None:
        response = client.get("/api/v1/progress/me")

        assert response.status_code == 200
        assert response.json() == {"user": None}

    def test_invalid_token_leaves_user_empty(self, client: TestClient) -> None:
        """Test that a bad token does not fail the request in the middleware."""
        response = client.get("/api/v1/progress/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 200
        assert response.json() == {"user": None}

    def test_refresh_token_is_not_an_access_token(self, client: TestClient, jwt_manager: JWTManager) -> None:
        refresh_token, _ = jwt_manager.create_refresh_token("user-1", "device-1")

        response = client.get("/api/v1/progress/me", headers={"Authorization": f"Bearer {refresh_token}"})

        assert response.json() == {"user": None}

    def test_token_from_other_secret_rejected(self, client: TestClient, jwt_settings) -> None:
        other = JWTManager(jwt_settings.model_copy(update={"secret_key": jwt_settings.refresh_secret_key}))
        token = other.create_access_token("user-1", "admin", "admin@academy.test")

        response = client.get("/api/v1/progress/me", headers={"Authorization": f"Bearer {token}"})

        assert response.json() == {"user": None}


class TestExtractBearerToken:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("Basic dXNlcjpwYXNz", None),
            ("Bearer", None),
            ("Bearer a b", None),
        ],
    )
    def test_header_forms(self, header: str, expected: str | None) -> None:
        request = SimpleNamespace(headers={"Authorization": header})

        assert extract_bearer_token(request) == expected

    def test_no_header(self) -> None:
        assert extract_bearer_token(SimpleNamespace(headers={})) is None


class TestCurrentUser:
    def _user(self, role: str) -> CurrentUser:
        payload = TokenPayload(sub="user-1", type="access", role=role, email="x@academy.test", exp=0, iat=0, jti="jti-1")
        return CurrentUser(payload, "token")

    @pytest.mark.parametrize(
        ("role", "admin", "instructor", "student"),
        [
            ("super_admin", True, False, False),
            ("admin", True, False, False),
            ("instructor", False, True, False),
            ("student", False, False, True),
        ],
    )
    def test_role_flags(self, role: str, admin: bool, instructor: bool, student: bool) -> None:
        user = self._user(role)

        assert user.is_admin is admin
        assert user.is_instructor is instructor
        assert user.is_student is student

    def test_has_any_role(self) -> None:
        user = self._user("instructor")

        assert user.has_any_role("admin", "instructor")
        assert not user.has_any_role("student")
