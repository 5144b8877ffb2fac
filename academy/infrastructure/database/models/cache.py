# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Key-value rows backing the database cache store."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)


class CacheType(str, Enum):
    """Coarse lifetime class of a cached value."""

    REALTIME = "realtime"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CacheEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A cached value with a logical expiry.

    Expired rows are ignored on read and physically removed by
    invalidation or by the token cleanup job.
    """

    __tablename__ = "analytics_cache"

    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    data: Mapped[Any] = mapped_column(JSON, nullable=False)
    cache_type: Mapped[str] = mapped_column(String(20), nullable=False, default=CacheType.REALTIME.value)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
