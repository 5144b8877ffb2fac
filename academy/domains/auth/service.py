# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication service for password login.

This module provides the AuthService class which handles:
- Email/password login with account lockout
- Logout (access token blacklist and refresh token revocation)
- Password changes that invalidate every session

Token issuance and rotation are delegated to TokenService.

Example:
    >>> service = AuthService(db, token_service, settings.auth)
    >>> result = await service.login("ana@example.com", "secret", DeviceInfo())
    >>> await service.logout(result.tokens.access_token, result.tokens.refresh_token)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import AuthSettings
from academy.core.exceptions import AuthError, NotFoundError, ValidationError
from academy.domains.auth.jwt import TokenPair
from academy.domains.auth.password import PasswordHasher
from academy.domains.auth.token_service import AccountInactiveError, DeviceInfo, TokenService
from academy.infrastructure.database.models import BlacklistReason, RevokedReason, User
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class InvalidCredentialsError(AuthError):
    """Raised when the email or password is wrong."""

    code = "invalid_credentials"


class AccountLockedError(AuthError):
    """Raised when too many failed logins locked the account."""

    code = "account_locked"


@dataclass
class LoginResult:
    """Authenticated user and the issued tokens."""

    user: User
    tokens: TokenPair


class AuthService:
    """Password authentication on top of TokenService.

    Attributes:
        _db: Async database session.
        _tokens: Token lifecycle service.
        _settings: Lockout and hashing configuration.
        _hasher: Bcrypt password hasher.
    """

    def __init__(
        self,
        db: AsyncSession,
        token_service: TokenService,
        settings: AuthSettings,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._tokens = token_service
        self._settings = settings
        self._hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)
        self._clock = clock

    async def _get_user_by_email(self, email: str) -> User | None:
        result = await self._db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def login(self, email: str, password: str, device: DeviceInfo | None = None) -> LoginResult:
        """Authenticate with email and password and issue tokens.

        Each failed attempt increments the user's counter. When the counter
        reaches the configured maximum the account is locked. A lock that
        has already elapsed restarts the counter.

        Args:
            email: Login email.
            password: Plain text password.
            device: Device the session is bound to.

        Returns:
            LoginResult with the user and a new token pair.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
            AccountLockedError: If the account is locked.
            AccountInactiveError: If the account is disabled.
        """
        user = await self._get_user_by_email(email)
        if user is None:
            logger.info("Login failed: unknown email")
            raise InvalidCredentialsError("Invalid email or password")

        now = self._clock()
        if user.is_locked(now):
            raise AccountLockedError(
                "Account is locked due to too many failed login attempts",
                details={"locked_until": user.lock_until.isoformat()},
            )

        if not user.is_active:
            raise AccountInactiveError("Account is disabled")

        if not await asyncio.to_thread(self._hasher.verify, password, user.password_hash):
            await self._register_failure(user, now)
            raise InvalidCredentialsError("Invalid email or password")

        user.login_attempts = 0
        user.lock_until = None
        user.last_login_at = now

        tokens = await self._tokens.issue_token_pair(user, device)

        logger.info("User logged in: %s", user.id)
        return LoginResult(user=user, tokens=tokens)

    async def _register_failure(self, user: User, now: datetime) -> None:
        if user.lock_until is not None:
            # Previous lock elapsed
            user.login_attempts = 1
            user.lock_until = None
        else:
            user.login_attempts += 1

        if user.login_attempts >= self._settings.max_login_attempts:
            user.lock_until = now + timedelta(minutes=self._settings.lockout_minutes)
            logger.warning("Account locked after %d failed logins: %s", user.login_attempts, user.id)

        await self._db.commit()

    async def logout(self, access_token: str, refresh_token: str | None = None) -> None:
        """Blacklist the access token and revoke the refresh token.

        Args:
            access_token: The caller's current access token.
            refresh_token: Refresh token to revoke, if the client sent one.
        """
        claims = self._tokens.verify_access(access_token)
        await self._tokens.blacklist_access(access_token, BlacklistReason.LOGOUT.value, claims.sub)

        if refresh_token:
            await self._tokens.revoke(claims.sub, token=refresh_token)

        logger.info("User logged out: %s", claims.sub)

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        access_token: str | None = None,
    ) -> int:
        """Change a password and end every session of the user.

        Args:
            user_id: User changing the password.
            current_password: Password currently on file.
            new_password: Replacement password.
            access_token: Caller's access token, blacklisted on success.

        Returns:
            Number of refresh tokens revoked.

        Raises:
            NotFoundError: If the user does not exist.
            InvalidCredentialsError: If current_password is wrong.
            ValidationError: If the new password is too short or unchanged.
        """
        user = await self._db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")

        if not await asyncio.to_thread(self._hasher.verify, current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if new_password == current_password:
            raise ValidationError("New password must differ from the current one")

        user.password_hash = await asyncio.to_thread(self._hasher.hash, new_password)
        user.password_changed_at = self._clock()
        await self._db.commit()

        revoked = await self._tokens.revoke_all(user.id, RevokedReason.PASSWORD_CHANGED.value)

        if access_token:
            await self._tokens.blacklist_access(access_token, BlacklistReason.PASSWORD_CHANGE.value, user.id)

        logger.info("Password changed: user=%s, sessions_revoked=%d", user.id, revoked)
        return revoked
