# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Refresh token records and the access token blacklist."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import Base, UTCDateTime, UUIDPrimaryKeyMixin
from academy.utils.datetime import ensure_utc, utc_now


class RevokedReason(str, Enum):
    """Why a refresh token stopped being active."""

    ROTATED = "rotated"
    USER_REVOKED = "user_revoked"
    DEVICE_REVOKED = "device_revoked"
    ALL_REVOKED = "all_revoked"
    REUSE_DETECTED = "reuse_detected"
    PASSWORD_CHANGED = "password_changed"


class BlacklistReason(str, Enum):
    """Why an access token was blacklisted before its natural expiry."""

    LOGOUT = "logout"
    SECURITY_BREACH = "security_breach"
    PASSWORD_CHANGE = "password_change"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    ADMIN_ACTION = "admin_action"
    OTHER = "other"


class RefreshTokenRecord(UUIDPrimaryKeyMixin, Base):
    """An issued refresh token bound to one user device.

    Only the sha256 hash of the token is stored.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_active", "user_id", "is_active"),
        Index("ix_refresh_tokens_user_device", "user_id", "device_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_name: Mapped[str] = mapped_column(String(200), nullable=False)
    browser: Mapped[str] = mapped_column(String(100), nullable=False)
    os: Mapped[str] = mapped_column(String(100), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(30), nullable=True)

    def is_expired(self, now: datetime | None = None) -> bool:
        return ensure_utc(self.expires_at) <= (now or utc_now())

    def __repr__(self) -> str:
        return f"<RefreshTokenRecord user={self.user_id} device={self.device_id} active={self.is_active}>"


class BlacklistEntry(UUIDPrimaryKeyMixin, Base):
    """A revoked access token, kept until the token would have expired."""

    __tablename__ = "token_blacklist"

    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    reason: Mapped[str] = mapped_column(String(30), nullable=False, default=BlacklistReason.LOGOUT.value)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)
