# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Access and refresh token lifecycle.

This module issues token pairs bound to a device, rotates refresh tokens,
revokes sessions per token, per device or per user, and keeps a blacklist
of access tokens that must stop working before their natural expiry.

Refresh tokens are single use. Rotation deactivates the presented token
with a conditional UPDATE before the replacement is issued, so a stolen
token fails once its owner has rotated, and two concurrent rotations of
the same token cannot both succeed.

Example:
    >>> service = TokenService(db, JWTManager(settings.jwt), settings.jwt)
    >>> tokens = await service.issue_token_pair(user, DeviceInfo(browser="Firefox"))
    >>> result = await service.rotate_refresh(tokens.refresh_token)
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, NamedTuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import JWTSettings
from academy.core.exceptions import AuthError, ValidationError
from academy.domains.auth.jwt import JWTManager, TokenExpiredError, TokenPair, TokenPayload
from academy.domains.auth.token_store import TokenStore
from academy.infrastructure.database.models import (
    BlacklistEntry,
    BlacklistReason,
    RefreshTokenRecord,
    RevokedReason,
    User,
)
from academy.utils.datetime import ensure_utc, format_iso, utc_now

logger = logging.getLogger(__name__)


class RefreshTokenNotFoundError(AuthError):
    """Raised when a refresh token has no active record."""

    code = "refresh_token_not_found"


class RefreshTokenExpiredError(AuthError):
    """Raised when a refresh token is past its expiry."""

    code = "refresh_token_expired"


class TokenBlacklistedError(AuthError):
    """Raised when a blacklisted access token is presented."""

    code = "token_revoked"


class AccountInactiveError(AuthError):
    """Raised when the token owner's account is disabled."""

    code = "account_inactive"


class DeviceInfo(NamedTuple):
    """Device information for session tracking."""

    device_id: str | None = None
    device_name: str | None = None
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def with_defaults(self) -> "DeviceInfo":
        """Fill missing fields with placeholders and generate a device id."""
        return DeviceInfo(
            device_id=self.device_id or secrets.token_hex(16),
            device_name=self.device_name or "Unknown Device",
            browser=self.browser or "Unknown Browser",
            os=self.os or "Unknown OS",
            ip_address=self.ip_address or "Unknown",
            user_agent=self.user_agent or "Unknown",
        )


@dataclass
class RotationResult:
    """New token pair and the owner snapshot returned by rotation."""

    tokens: TokenPair
    user: User


@dataclass
class CleanupResult:
    """Counts of rows touched by a cleanup run."""

    refresh_tokens_deleted: int = 0
    blacklist_entries_deleted: int = 0
    lockouts_reset: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class DeviceSession:
    """An active refresh token as shown to its owner."""

    device_id: str
    device_name: str
    browser: str
    os: str
    ip_address: str
    created_at: str | None
    last_used_at: str | None
    expires_at: str | None

    @classmethod
    def from_record(cls, record: RefreshTokenRecord) -> "DeviceSession":
        return cls(
            device_id=record.device_id,
            device_name=record.device_name,
            browser=record.browser,
            os=record.os,
            ip_address=record.ip_address,
            created_at=format_iso(record.created_at),
            last_used_at=format_iso(record.last_used_at),
            expires_at=format_iso(record.expires_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TokenService:
    """Issue, verify, rotate and revoke tokens.

    Attributes:
        _db: Async database session. The service commits its own changes.
        _jwt: JWT encoder and decoder.
        _settings: JWT configuration.
        _store: Token persistence.
    """

    def __init__(
        self,
        db: AsyncSession,
        jwt_manager: JWTManager,
        settings: JWTSettings,
        store: TokenStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._jwt = jwt_manager
        self._settings = settings
        self._clock = clock
        self._store = store or TokenStore(db, clock=clock)

    # ========== Issue ==========

    async def _issue(self, user: User, device: DeviceInfo) -> TokenPair:
        device = device.with_defaults()

        await self._store.make_room(user.id, self._settings.max_refresh_tokens_per_user)

        tokens = self._jwt.create_token_pair(
            user_id=user.id,
            role=user.role,
            email=user.email,
            device_id=device.device_id,  # type: ignore[arg-type]
        )

        now = self._clock()
        await self._store.add_refresh_token(
            RefreshTokenRecord(
                user_id=user.id,
                token_hash=self._jwt.hash_token(tokens.refresh_token),
                device_id=device.device_id,
                device_name=device.device_name,
                browser=device.browser,
                os=device.os,
                ip_address=device.ip_address,
                user_agent=device.user_agent,
                created_at=now,
                last_used_at=now,
                expires_at=tokens.refresh_expires_at,
                is_active=True,
            )
        )
        return tokens

    async def issue_token_pair(self, user: User, device: DeviceInfo | None = None) -> TokenPair:
        """Issue an access/refresh pair and record the refresh token.

        When the user already holds the maximum number of active refresh
        tokens, the least recently used one is evicted first.

        Args:
            user: Token owner.
            device: Device the refresh token is bound to.

        Returns:
            The new token pair.
        """
        tokens = await self._issue(user, device or DeviceInfo())
        await self._db.commit()

        logger.info("Issued token pair: user=%s, device=%s", user.id, tokens.device_id)
        return tokens

    # ========== Verify ==========

    def verify_access(self, token: str) -> TokenPayload:
        """Verify an access token's signature, expiry and type.

        The blacklist is not consulted; see authenticate().

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid.
        """
        return self._jwt.decode_token(token, "access")

    async def is_blacklisted(self, token: str) -> bool:
        """Check whether an access token was revoked and is still listed."""
        entry = await self._store.find_blacklist_entry(self._jwt.hash_token(token))
        if entry is None:
            return False
        return ensure_utc(entry.expires_at) > self._clock()

    async def authenticate(self, token: str) -> TokenPayload:
        """Verify an access token and reject blacklisted ones.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid.
            TokenBlacklistedError: If the token was revoked.
        """
        claims = self.verify_access(token)
        if await self.is_blacklisted(token):
            raise TokenBlacklistedError("Token has been revoked")
        return claims

    def is_token_expiring_soon(self, token: str, window_minutes: int | None = None) -> bool:
        """Check whether a token expires within the given window.

        Undecodable tokens count as expiring.
        """
        expires_at = self._jwt.peek_expiry(token)
        if expires_at is None:
            return True

        window = timedelta(minutes=window_minutes or self._settings.expiring_soon_minutes)
        return expires_at - self._clock() <= window

    # ========== Rotate ==========

    async def rotate_refresh(self, token: str, device: DeviceInfo | None = None) -> RotationResult:
        """Exchange a refresh token for a new pair on the same device.

        Args:
            token: The refresh token being presented.
            device: Current device details; missing fields keep the
                values recorded at login.

        Returns:
            RotationResult with the new pair and the owner.

        Raises:
            RefreshTokenExpiredError: If the token is past its expiry.
            RefreshTokenNotFoundError: If no active record matches, including
                when the token was already rotated.
            AccountInactiveError: If the owner is disabled.
            InvalidTokenError: If the token signature or type is invalid.
        """
        token_hash = self._jwt.hash_token(token)

        try:
            claims = self._jwt.decode_token(token, "refresh")
        except TokenExpiredError as e:
            await self._store.delete_refresh_token_by_hash(token_hash)
            await self._db.commit()
            raise RefreshTokenExpiredError("Refresh token has expired") from e

        user = await self._db.get(User, claims.sub)
        if user is None:
            raise RefreshTokenNotFoundError("Refresh token owner not found")
        if not user.is_active:
            raise AccountInactiveError("Account is disabled")

        record = await self._store.find_active(user.id, token_hash)
        if record is None:
            await self._handle_reuse(user.id, token_hash)
            raise RefreshTokenNotFoundError("Refresh token not found or already used")

        if record.is_expired(self._clock()):
            await self._store.delete_refresh_token(record)
            await self._db.commit()
            raise RefreshTokenExpiredError("Refresh token has expired")

        if not await self._store.deactivate_if_active(record.id, RevokedReason.ROTATED.value):
            raise RefreshTokenNotFoundError("Refresh token was used concurrently")

        current = device or DeviceInfo()
        tokens = await self._issue(
            user,
            DeviceInfo(
                device_id=record.device_id,
                device_name=current.device_name or record.device_name,
                browser=current.browser or record.browser,
                os=current.os or record.os,
                ip_address=current.ip_address or record.ip_address,
                user_agent=current.user_agent or record.user_agent,
            ),
        )
        await self._db.commit()

        logger.info("Rotated refresh token: user=%s, device=%s", user.id, record.device_id)
        return RotationResult(tokens=tokens, user=user)

    async def _handle_reuse(self, user_id: str, token_hash: str) -> None:
        """Revoke a device's sessions when a rotated token comes back."""
        if not self._settings.revoke_device_on_reuse:
            return

        stale = await self._store.find_by_hash(user_id, token_hash)
        if stale is None or stale.revoked_reason != RevokedReason.ROTATED.value:
            return

        revoked = await self._store.revoke(
            user_id,
            RevokedReason.REUSE_DETECTED.value,
            device_id=stale.device_id,
        )
        await self._db.commit()

        logger.warning(
            "Rotated refresh token reused, revoked device sessions: user=%s, device=%s, count=%d",
            user_id,
            stale.device_id,
            revoked,
        )

    # ========== Revoke ==========

    async def revoke(
        self,
        user_id: str,
        token: str | None = None,
        device_id: str | None = None,
    ) -> int:
        """Revoke one token, one device, or every session of a user.

        Args:
            user_id: Token owner.
            token: Revoke only this refresh token.
            device_id: Revoke every token of this device.

        Returns:
            Number of records revoked.

        Raises:
            ValidationError: If both token and device_id are given.
        """
        if token is not None and device_id is not None:
            raise ValidationError("Pass either a token or a device id, not both")

        if token is not None:
            reason = RevokedReason.USER_REVOKED
            count = await self._store.revoke(user_id, reason.value, token_hash=self._jwt.hash_token(token))
        elif device_id is not None:
            reason = RevokedReason.DEVICE_REVOKED
            count = await self._store.revoke(user_id, reason.value, device_id=device_id)
        else:
            reason = RevokedReason.ALL_REVOKED
            count = await self._store.revoke(user_id, reason.value)

        await self._db.commit()

        logger.info("Revoked refresh tokens: user=%s, reason=%s, count=%d", user_id, reason.value, count)
        return count

    async def revoke_all(self, user_id: str, reason: str) -> int:
        """Revoke every session of a user with an explicit reason."""
        count = await self._store.revoke(user_id, RevokedReason(reason).value)
        await self._db.commit()

        logger.info("Revoked refresh tokens: user=%s, reason=%s, count=%d", user_id, reason, count)
        return count

    async def active_devices(self, user_id: str) -> list[DeviceSession]:
        """List the user's active, unexpired sessions, most recent first."""
        records = await self._store.list_active(user_id)
        return [DeviceSession.from_record(record) for record in records]

    # ========== Blacklist ==========

    async def blacklist_access(
        self,
        token: str,
        reason: str = BlacklistReason.LOGOUT.value,
        user_id: str | None = None,
    ) -> BlacklistEntry:
        """Blacklist an access token until it would have expired.

        Calling this twice for the same token returns the first entry.

        Args:
            token: Raw access token.
            reason: One of BlacklistReason.
            user_id: Owner of the token, if known.

        Returns:
            The blacklist entry.

        Raises:
            ValidationError: If the reason is unknown.
        """
        try:
            reason = BlacklistReason(reason).value
        except ValueError as e:
            raise ValidationError(f"Unknown blacklist reason: {reason}") from e

        token_hash = self._jwt.hash_token(token)
        existing = await self._store.find_blacklist_entry(token_hash)
        if existing is not None:
            return existing

        expires_at = self._jwt.peek_expiry(token)
        if expires_at is None:
            expires_at = self._clock() + timedelta(hours=self._settings.blacklist_fallback_hours)

        entry = BlacklistEntry(
            token_hash=token_hash,
            user_id=user_id,
            reason=reason,
            expires_at=expires_at,
            created_at=self._clock(),
        )

        try:
            await self._store.add_blacklist_entry(entry)
            await self._db.commit()
        except IntegrityError:
            # Blacklisted concurrently by another request
            await self._db.rollback()
            existing = await self._store.find_blacklist_entry(token_hash)
            if existing is None:
                raise
            return existing

        logger.info("Blacklisted access token: user=%s, reason=%s", user_id, reason)
        return entry

    # ========== Maintenance ==========

    async def cleanup_expired(self) -> CleanupResult:
        """Delete expired token rows and lift elapsed login lockouts.

        Each step commits on its own. A failing step is logged and the
        remaining steps still run.

        Returns:
            CleanupResult with the per-step counts.
        """
        result = CleanupResult()
        steps: list[tuple[str, Callable[[], Any]]] = [
            ("refresh_tokens_deleted", self._store.delete_expired_refresh_tokens),
            ("blacklist_entries_deleted", self._store.delete_expired_blacklist_entries),
            ("lockouts_reset", self._store.reset_elapsed_lockouts),
        ]

        for field_name, step in steps:
            try:
                count = await step()
                await self._db.commit()
                setattr(result, field_name, count)
            except SQLAlchemyError as e:
                await self._db.rollback()
                logger.error("Token cleanup step %s failed: %s", field_name, e, exc_info=True)

        logger.info(
            "Token cleanup completed: refresh=%d, blacklist=%d, lockouts=%d",
            result.refresh_tokens_deleted,
            result.blacklist_entries_deleted,
            result.lockouts_reset,
        )
        return result
