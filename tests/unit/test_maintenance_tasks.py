# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the maintenance task executors and actors.

Executors are awaited directly against the test database. Actors are
called synchronously with run_async patched out.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from academy.infrastructure.background.tasks import maintenance
from academy.infrastructure.database.models import Batch, Doubt, User
from academy.utils.datetime import utc_now


def _returning(value):
    """Stand-in for run_async that discards the coroutine."""

    def _run(coro):
        coro.close()
        return value

    return _run


def _raising(error: Exception):
    def _run(coro):
        coro.close()
        raise error

    return _run


class TestExecutors:
    """Tests for the async executors behind each actor."""

    async def test_token_cleanup_lifts_elapsed_lockouts(self, db: AsyncSession, make_user) -> None:
        locked = await make_user(login_attempts=5, lock_until=utc_now() - timedelta(minutes=1))
        locked_id = locked.id

        stats = await maintenance.execute_token_cleanup(db)

        assert stats == {
            "refresh_tokens_deleted": 0,
            "blacklist_entries_deleted": 0,
            "lockouts_reset": 1,
        }
        user = await db.get(User, locked_id, populate_existing=True)
        assert user.login_attempts == 0
        assert user.lock_until is None

    async def test_stale_doubt_cleanup(self, db: AsyncSession, make_user, running_batch: Batch) -> None:
        student = await make_user()
        db.add(
            Doubt(
                student_id=student.id,
                batch_id=running_batch.id,
                course_id=running_batch.course_id,
                title="Stuck on recursion",
                status="answered",
                updated_at=utc_now() - timedelta(days=40),
            )
        )
        await db.commit()

        assert await maintenance.execute_stale_doubt_cleanup(db, 30) == {"closed": 1, "days": 30}

    async def test_batch_recalculation(
        self, db: AsyncSession, make_user, make_enrollment, running_batch: Batch
    ) -> None:
        for _ in range(2):
            await make_enrollment(await make_user(), running_batch)

        result = await maintenance.execute_batch_recalculation(db, running_batch.id)

        assert result["batch_id"] == running_batch.id
        assert result["succeeded"] == 2
        assert result["failed"] == 0

    async def test_list_running_batches(
        self, db: AsyncSession, make_user, make_course, make_batch, running_batch: Batch
    ) -> None:
        """Test that only started, unfinished, active batches are listed."""
        instructor = await make_user("instructor")
        course = await make_course()
        now = utc_now()
        await make_batch(course, instructor, name="Upcoming")
        await make_batch(
            course,
            instructor,
            name="Finished",
            start_date=now - timedelta(days=90),
            end_date=now - timedelta(days=1),
        )
        await make_batch(
            course,
            instructor,
            name="Suspended",
            start_date=now - timedelta(days=3),
            is_active=False,
        )

        assert await maintenance.list_running_batches(db) == [running_batch.id]


class TestActors:
    """Tests for the Dramatiq actor wrappers."""

    def test_active_batches_fan_out(self) -> None:
        with (
            patch.object(maintenance, "run_async", side_effect=_returning(["b1", "b2"])),
            patch.object(maintenance.recalculate_batch_progress, "send") as send,
        ):
            result = maintenance.recalculate_active_batches()

        assert result == {"batch_count": 2}
        assert [call.args for call in send.call_args_list] == [("b1",), ("b2",)]

    def test_batch_recalculation_result_passes_through(self) -> None:
        outcome = {"batch_id": "b1", "succeeded": 3, "failed": 0, "errors": []}

        with patch.object(maintenance, "run_async", side_effect=_returning(outcome)):
            assert maintenance.recalculate_batch_progress("b1") == outcome

    @pytest.mark.parametrize(
        ("actor", "args"),
        [
            (maintenance.cleanup_expired_tokens, ()),
            (maintenance.close_stale_doubts, (7,)),
            (maintenance.recalculate_batch_progress, ("b1",)),
        ],
    )
    def test_failures_propagate_for_retry(self, actor, args) -> None:
        """Test that actors re-raise so Dramatiq can retry them."""
        with patch.object(maintenance, "run_async", side_effect=_raising(RuntimeError("db down"))):
            with pytest.raises(RuntimeError, match="db down"):
                actor(*args)
