# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for JWT token utilities.

Tests the JWTManager class and token operations.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from jose import jwt
from pydantic import SecretStr

from academy.core.config.settings import JWTSettings
from academy.core.exceptions import AuthError
from academy.domains.auth.jwt import (
    InvalidTokenError,
    JWTManager,
    TokenExpiredError,
    TokenPair,
)
from academy.utils.datetime import utc_now


class TestJWTManager:
    """Tests for JWTManager class."""

    def test_create_token_pair_returns_valid_tokens(self, jwt_manager: JWTManager) -> None:
        """Test that create_token_pair returns valid token pair."""
        result = jwt_manager.create_token_pair(str(uuid4()), "student", "ana@academy.test", "device-1")

        assert isinstance(result, TokenPair)
        assert result.token_type == "Bearer"
        assert result.expires_in == 15 * 60
        assert result.refresh_expires_in == 7 * 24 * 60 * 60
        assert result.device_id == "device-1"
        assert result.refresh_expires_at > utc_now() + timedelta(days=6)

    def test_access_token_carries_role_and_email(self, jwt_manager: JWTManager) -> None:
        """Test that access tokens embed the user's role and email."""
        user_id = str(uuid4())
        token = jwt_manager.create_access_token(user_id, "instructor", "ivy@academy.test")

        payload = jwt_manager.decode_token(token, "access")

        assert payload.sub == user_id
        assert payload.type == "access"
        assert payload.role == "instructor"
        assert payload.email == "ivy@academy.test"
        assert payload.device_id is None

    def test_refresh_token_is_bound_to_device(self, jwt_manager: JWTManager) -> None:
        """Test that refresh tokens carry the device id and no role."""
        token, _ = jwt_manager.create_refresh_token("user-1", "device-9")

        payload = jwt_manager.decode_token(token, "refresh")

        assert payload.type == "refresh"
        assert payload.device_id == "device-9"
        assert payload.role is None

    def test_tokens_issued_together_are_distinct(self, jwt_manager: JWTManager) -> None:
        """Test that tokens issued in the same second still differ."""
        first = jwt_manager.create_access_token("user-1", "student", "a@academy.test")
        second = jwt_manager.create_access_token("user-1", "student", "a@academy.test")

        assert first != second

    def test_decode_with_wrong_type_raises(self, jwt_manager: JWTManager) -> None:
        """Test that an access token is rejected where a refresh token is expected."""
        token = jwt_manager.create_access_token("user-1", "student", "a@academy.test")

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token, "refresh")

    def test_refresh_token_uses_its_own_secret(self, jwt_manager: JWTManager) -> None:
        """Test that a refresh token does not verify with the access secret."""
        token, _ = jwt_manager.create_refresh_token("user-1", "device-1")

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token, "access")

    def test_expired_token_raises(self, jwt_settings: JWTSettings) -> None:
        """Test that decoding an expired token raises TokenExpiredError."""
        manager = JWTManager(jwt_settings.model_copy(update={"access_token_expire_minutes": -1}))
        token = manager.create_access_token("user-1", "student", "a@academy.test")

        with pytest.raises(TokenExpiredError) as exc_info:
            manager.decode_token(token, "access")

        assert exc_info.value.code == "token_expired"
        assert isinstance(exc_info.value, AuthError)

    def test_tampered_token_raises(self, jwt_manager: JWTManager, jwt_settings: JWTSettings) -> None:
        """Test that a token signed with another key is rejected."""
        other = JWTManager(jwt_settings.model_copy(update={"secret_key": SecretStr("another-secret")}))
        token = other.create_access_token("user-1", "admin", "a@academy.test")

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token, "access")

    def test_wrong_audience_raises(self, jwt_manager: JWTManager, jwt_settings: JWTSettings) -> None:
        """Test that a token for another audience is rejected."""
        now = int(utc_now().timestamp())
        token = jwt.encode(
            {
                "sub": "user-1",
                "type": "access",
                "iss": jwt_settings.issuer,
                "aud": "someone-else",
                "exp": now + 600,
                "iat": now,
                "jti": "x",
            },
            jwt_settings.secret_key.get_secret_value(),
            algorithm=jwt_settings.algorithm,
        )

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token, "access")

    def test_garbage_token_raises(self, jwt_manager: JWTManager) -> None:
        """Test that a malformed token is rejected."""
        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token("not.a.token", "access")


class TestPeekExpiry:
    """Tests for reading expiry without verification."""

    def test_peek_expiry_of_valid_token(self, jwt_manager: JWTManager) -> None:
        """Test that the exp claim is returned as an aware datetime."""
        token = jwt_manager.create_access_token("user-1", "student", "a@academy.test")

        expires_at = jwt_manager.peek_expiry(token)

        assert expires_at is not None
        assert expires_at.tzinfo is not None
        assert abs((expires_at - utc_now()) - timedelta(minutes=15)) < timedelta(seconds=5)

    def test_peek_expiry_of_garbage_returns_none(self, jwt_manager: JWTManager) -> None:
        """Test that an unparseable token has no expiry."""
        assert jwt_manager.peek_expiry("garbage") is None


class TestHashToken:
    """Tests for token hashing."""

    def test_hash_is_stable_sha256(self) -> None:
        """Test that hashing is deterministic and hex encoded."""
        first = JWTManager.hash_token("token-value")

        assert first == JWTManager.hash_token("token-value")
        assert len(first) == 64
        assert first != JWTManager.hash_token("other-value")
