# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain services.

This module provides authentication services:
- JWT token creation and validation
- Refresh token rotation, revocation and access token blacklisting
- Password login with account lockout

Exports:
    PasswordHasher: Secure password hashing using bcrypt.
    JWTManager: JWT token creation and validation.
    TokenStore: Persistence of refresh tokens and blacklist entries.
    TokenService: Token lifecycle service.
    AuthService: Login, logout and password changes.
"""

from academy.domains.auth.jwt import (
    InvalidTokenError,
    JWTError,
    JWTManager,
    TokenExpiredError,
    TokenPair,
    TokenPayload,
)
from academy.domains.auth.password import PasswordHasher
from academy.domains.auth.service import (
    AccountLockedError,
    AuthService,
    InvalidCredentialsError,
    LoginResult,
)
from academy.domains.auth.token_service import (
    AccountInactiveError,
    CleanupResult,
    DeviceInfo,
    DeviceSession,
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    RotationResult,
    TokenBlacklistedError,
    TokenService,
)
from academy.domains.auth.token_store import TokenStore

__all__ = [
    "PasswordHasher",
    "JWTManager",
    "TokenPayload",
    "TokenPair",
    "TokenStore",
    "TokenService",
    "DeviceInfo",
    "DeviceSession",
    "RotationResult",
    "CleanupResult",
    "AuthService",
    "LoginResult",
    # Errors
    "JWTError",
    "TokenExpiredError",
    "InvalidTokenError",
    "RefreshTokenNotFoundError",
    "RefreshTokenExpiredError",
    "TokenBlacklistedError",
    "AccountInactiveError",
    "AccountLockedError",
    "InvalidCredentialsError",
]
