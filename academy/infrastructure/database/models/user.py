# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User accounts with login lockout state."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)
from academy.utils.datetime import ensure_utc, utc_now


class UserRole(str, Enum):
    """Roles a user account can hold."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Platform user.

    Attributes:
        email: Unique login email.
        full_name: Display name.
        password_hash: Bcrypt hash of the password.
        role: One of UserRole.
        is_active: Disabled accounts cannot log in or refresh tokens.
        login_attempts: Consecutive failed logins.
        lock_until: End of the current lockout window, if any.
        last_login_at: Time of the last successful login.
        password_changed_at: Time of the last password change.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    password_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def is_locked(self, now: datetime | None = None) -> bool:
        """Check whether the account is inside a lockout window."""
        if self.lock_until is None:
            return False
        return ensure_utc(self.lock_until) > (now or utc_now())

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT.value

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
