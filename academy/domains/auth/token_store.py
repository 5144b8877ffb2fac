# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence for refresh token records and the access token blacklist.

The store only reads and writes rows. It flushes but never commits; the
token service owns transaction boundaries.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy.infrastructure.database.models import BlacklistEntry, RefreshTokenRecord, User
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class TokenStore:
    """Data access for token records.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = db
        self._clock = clock

    # ========== Refresh tokens ==========

    async def add_refresh_token(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        self.db.add(record)
        await self.db.flush()
        return record

    async def count_active(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.user_id == user_id,
                RefreshTokenRecord.is_active.is_(True),
            )
        )
        return result.scalar_one()

    async def make_room(self, user_id: str, max_active: int) -> int:
        """Delete least recently used active records until one more fits.

        Args:
            user_id: Owner of the records.
            max_active: Maximum number of active records per user.

        Returns:
            Number of evicted records.
        """
        result = await self.db.execute(
            select(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.user_id == user_id,
                RefreshTokenRecord.is_active.is_(True),
            )
            .order_by(RefreshTokenRecord.last_used_at.asc(), RefreshTokenRecord.created_at.asc())
        )
        active = list(result.scalars().all())

        excess = len(active) - max(max_active - 1, 0)
        if excess <= 0:
            return 0

        for record in active[:excess]:
            await self.db.delete(record)
            logger.info(
                "Evicted least recently used device: user=%s, device=%s",
                user_id,
                record.device_id,
            )

        await self.db.flush()
        return excess

    async def find_active(self, user_id: str, token_hash: str) -> RefreshTokenRecord | None:
        result = await self.db.execute(
            select(RefreshTokenRecord).where(
                RefreshTokenRecord.user_id == user_id,
                RefreshTokenRecord.token_hash == token_hash,
                RefreshTokenRecord.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_hash(self, user_id: str, token_hash: str) -> RefreshTokenRecord | None:
        """Find a record regardless of its active flag."""
        result = await self.db.execute(
            select(RefreshTokenRecord).where(
                RefreshTokenRecord.user_id == user_id,
                RefreshTokenRecord.token_hash == token_hash,
            )
        )
        return result.scalars().first()

    async def deactivate_if_active(self, record_id: str, reason: str) -> bool:
        """Atomically flip a record from active to inactive.

        The UPDATE is conditional on ``is_active``, so when two requests race
        to rotate the same token exactly one of them sees an affected row.

        Returns:
            True if this call deactivated the record.
        """
        result = await self.db.execute(
            update(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.id == record_id,
                RefreshTokenRecord.is_active.is_(True),
            )
            .values(is_active=False, revoked_at=self._clock(), revoked_reason=reason)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    async def revoke(
        self,
        user_id: str,
        reason: str,
        token_hash: str | None = None,
        device_id: str | None = None,
    ) -> int:
        """Deactivate the user's active records, optionally narrowed.

        Returns:
            Number of records deactivated.
        """
        stmt = update(RefreshTokenRecord).where(
            RefreshTokenRecord.user_id == user_id,
            RefreshTokenRecord.is_active.is_(True),
        )
        if token_hash is not None:
            stmt = stmt.where(RefreshTokenRecord.token_hash == token_hash)
        if device_id is not None:
            stmt = stmt.where(RefreshTokenRecord.device_id == device_id)

        result = await self.db.execute(
            stmt.values(is_active=False, revoked_at=self._clock(), revoked_reason=reason)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0

    async def delete_refresh_token(self, record: RefreshTokenRecord) -> None:
        await self.db.delete(record)
        await self.db.flush()

    async def delete_refresh_token_by_hash(self, token_hash: str) -> int:
        result = await self.db.execute(
            delete(RefreshTokenRecord)
            .where(RefreshTokenRecord.token_hash == token_hash)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0

    async def list_active(self, user_id: str) -> list[RefreshTokenRecord]:
        """Active, unexpired records, most recently used first."""
        result = await self.db.execute(
            select(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.user_id == user_id,
                RefreshTokenRecord.is_active.is_(True),
                RefreshTokenRecord.expires_at > self._clock(),
            )
            .order_by(RefreshTokenRecord.last_used_at.desc())
        )
        return list(result.scalars().all())

    async def delete_expired_refresh_tokens(self) -> int:
        result = await self.db.execute(
            delete(RefreshTokenRecord)
            .where(RefreshTokenRecord.expires_at <= self._clock())
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0

    # ========== Blacklist ==========

    async def find_blacklist_entry(self, token_hash: str) -> BlacklistEntry | None:
        result = await self.db.execute(
            select(BlacklistEntry).where(BlacklistEntry.token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def add_blacklist_entry(self, entry: BlacklistEntry) -> BlacklistEntry:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def delete_expired_blacklist_entries(self) -> int:
        result = await self.db.execute(
            delete(BlacklistEntry)
            .where(BlacklistEntry.expires_at <= self._clock())
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0

    # ========== Login lockouts ==========

    async def reset_elapsed_lockouts(self) -> int:
        """Clear lockouts whose window has passed.

        Returns:
            Number of users unlocked.
        """
        result = await self.db.execute(
            update(User)
            .where(User.lock_until.is_not(None), User.lock_until <= self._clock())
            .values(login_attempts=0, lock_until=None)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount or 0
