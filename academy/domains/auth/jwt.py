# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""JWT token management utilities.

This module provides JWT token creation and validation using python-jose.
Access tokens are short-lived bearer credentials carrying the user's role
and email. Refresh tokens are long-lived, bound to one device, and signed
with their own secret so a leaked access secret cannot mint them.

Example:
    >>> from academy.core.config import get_settings
    >>> jwt_manager = JWTManager(get_settings().jwt)
    >>> tokens = jwt_manager.create_token_pair("user-123", "student", "a@b.c", "device-1")
    >>> claims = jwt_manager.decode_token(tokens.access_token, "access")
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Literal

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from academy.core.config.settings import JWTSettings
from academy.core.exceptions import AuthError
from academy.utils.datetime import utc_from_timestamp, utc_now

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh"]


class TokenPayload(BaseModel):
    """JWT token payload structure.

    Attributes:
        sub: Subject (user ID).
        type: Token type (access or refresh).
        role: User role, access tokens only.
        email: User email, access tokens only.
        device_id: Device the token was issued to, refresh tokens only.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
        jti: JWT ID, makes tokens issued in the same second distinct.
    """

    sub: str
    type: TokenType
    role: str | None = None
    email: str | None = None
    device_id: str | None = None
    exp: int
    iat: int
    jti: str

    @property
    def expires_at(self) -> datetime:
        return utc_from_timestamp(self.exp)


class TokenPair(BaseModel):
    """Access and refresh token pair.

    Attributes:
        access_token: JWT access token string.
        refresh_token: JWT refresh token string.
        token_type: Token type (always "Bearer").
        expires_in: Access token expiration in seconds.
        refresh_expires_in: Refresh token expiration in seconds.
        device_id: Device the refresh token is bound to.
        refresh_expires_at: Absolute refresh token expiry.
    """

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int
    device_id: str
    refresh_expires_at: datetime


class JWTError(AuthError):
    """Base exception for JWT operations."""

    code = "invalid_token"


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    code = "token_expired"


class InvalidTokenError(JWTError):
    """Raised when a token is malformed, tampered with or of the wrong type."""

    pass


class JWTManager:
    """JWT token creation and validation manager.

    Attributes:
        _settings: JWT configuration settings.
    """

    def __init__(self, settings: JWTSettings) -> None:
        """Initialize the JWT manager.

        Args:
            settings: JWT configuration settings.
        """
        self._settings = settings

    def _secret_for(self, token_type: TokenType) -> str:
        if token_type == "refresh" and self._settings.refresh_secret_key is not None:
            return self._settings.refresh_secret_key.get_secret_value()
        return self._settings.secret_key.get_secret_value()

    def _encode(self, claims: dict[str, Any], token_type: TokenType, expires_at: datetime) -> str:
        now = utc_now()
        payload = {
            **claims,
            "type": token_type,
            "iss": self._settings.issuer,
            "aud": self._settings.audience,
            "exp": int(expires_at.timestamp()),
            "iat": int(now.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_for(token_type), algorithm=self._settings.algorithm)

    def create_access_token(self, user_id: str, role: str, email: str) -> str:
        """Create an access token.

        Args:
            user_id: User identifier.
            role: User role.
            email: User email.

        Returns:
            JWT access token string.
        """
        expires_at = utc_now() + timedelta(minutes=self._settings.access_token_expire_minutes)
        return self._encode({"sub": user_id, "role": role, "email": email}, "access", expires_at)

    def create_refresh_token(self, user_id: str, device_id: str) -> tuple[str, datetime]:
        """Create a device-bound refresh token.

        Returns:
            Tuple of the token string and its absolute expiry.
        """
        expires_at = utc_now() + timedelta(days=self._settings.refresh_token_expire_days)
        token = self._encode({"sub": user_id, "device_id": device_id}, "refresh", expires_at)
        return token, expires_at

    def create_token_pair(
        self,
        user_id: str,
        role: str,
        email: str,
        device_id: str,
    ) -> TokenPair:
        """Create an access and refresh token pair.

        Args:
            user_id: User identifier.
            role: User role, embedded in the access token.
            email: User email, embedded in the access token.
            device_id: Device the refresh token is bound to.

        Returns:
            TokenPair with access and refresh tokens.
        """
        access_token = self.create_access_token(user_id, role, email)
        refresh_token, refresh_expires_at = self.create_refresh_token(user_id, device_id)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="Bearer",
            expires_in=self._settings.access_token_expire_minutes * 60,
            refresh_expires_in=self._settings.refresh_token_expire_days * 24 * 60 * 60,
            device_id=device_id,
            refresh_expires_at=refresh_expires_at,
        )

    def decode_token(self, token: str, expected_type: TokenType | None = None) -> TokenPayload:
        """Decode and validate a JWT token.

        The signing secret is chosen by expected_type, so refresh tokens
        must be decoded with ``expected_type="refresh"``.

        Args:
            token: JWT token string.
            expected_type: Expected token type (access or refresh).

        Returns:
            TokenPayload with decoded claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid or wrong type.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected_type or "access"),
                algorithms=[self._settings.algorithm],
                audience=self._settings.audience,
                issuer=self._settings.issuer,
            )
            claims = TokenPayload.model_validate(payload)
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except (JoseJWTError, PydanticValidationError) as e:
            logger.warning("Token decode failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}") from e

        if expected_type and claims.type != expected_type:
            raise InvalidTokenError(f"Expected {expected_type} token, got {claims.type}")

        return claims

    def peek_expiry(self, token: str) -> datetime | None:
        """Read the ``exp`` claim without verifying the signature.

        Returns:
            The expiry, or None if the token cannot be parsed.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except JoseJWTError:
            return None

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        return utc_from_timestamp(exp)

    @staticmethod
    def hash_token(token: str) -> str:
        """Create a SHA-256 hash of a token.

        Token records and blacklist entries store this hash instead of the
        token itself.

        Args:
            token: Token string to hash.

        Returns:
            SHA-256 hash of the token as hex string.
        """
        return hashlib.sha256(token.encode()).hexdigest()
