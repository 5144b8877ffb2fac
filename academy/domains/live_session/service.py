# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Live session scheduling and attendance.

Sessions are hosted by a video provider picked per session, falling back
to VIDEO_PROVIDER. Attendance is stored as SessionAttendee rows and
mirrored into the student's progress record.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.core.config.settings import VideoSettings
from academy.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from academy.domains.progress.service import ProgressService
from academy.infrastructure.database.models import (
    AttendanceStatus,
    Batch,
    LiveSession,
    SessionAttendee,
    SessionStatus,
    User,
    UserRole,
)
from academy.infrastructure.integrations.video import SessionDetails, get_video_provider
from academy.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

MAX_SESSION_MINUTES = 480


class LiveSessionService:
    """Schedules live sessions and tracks who attended them."""

    def __init__(
        self,
        db: AsyncSession,
        settings: VideoSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._settings = settings
        self._clock = clock

    async def schedule_session(
        self,
        batch_id: str,
        instructor_id: str,
        title: str,
        scheduled_start: datetime,
        duration_minutes: int,
        provider: str | None = None,
    ) -> LiveSession:
        """Create a live session and its meeting links.

        Args:
            batch_id: Batch the session belongs to.
            instructor_id: Host. Must teach the batch unless an admin.
            title: Session title.
            scheduled_start: Start time, must be in the future.
            duration_minutes: Length, 1 to 480 minutes.
            provider: Video provider name, defaults to VIDEO_PROVIDER.

        Returns:
            The persisted LiveSession with join and start URLs.

        Raises:
            NotFoundError: If the batch does not exist.
            AuthorizationError: If the host may not schedule for the batch.
            ValidationError: If the timing or provider is invalid.
            UpstreamError: If the provider fails to create the meeting.
        """
        if not title or not title.strip():
            raise ValidationError("title is required")
        if not 0 < duration_minutes <= MAX_SESSION_MINUTES:
            raise ValidationError(
                f"duration_minutes must be between 1 and {MAX_SESSION_MINUTES}",
                details={"duration_minutes": duration_minutes},
            )

        start = ensure_utc(scheduled_start)
        if start <= self._clock():
            raise ValidationError("scheduled_start must be in the future")

        batch = await self._db.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch not found: {batch_id}")

        if batch.instructor_id != instructor_id:
            host = await self._db.get(User, instructor_id)
            if host is None or host.role not in (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value):
                raise AuthorizationError("Only the batch instructor can schedule sessions")

        video = get_video_provider(provider or self._settings.provider, self._settings)
        meeting = await video.create_session(
            SessionDetails(
                title=title.strip(),
                scheduled_start=start,
                duration_minutes=duration_minutes,
                host_id=instructor_id,
            )
        )

        session = LiveSession(
            batch_id=batch.id,
            course_id=batch.course_id,
            instructor_id=instructor_id,
            title=title.strip(),
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=duration_minutes),
            status=SessionStatus.SCHEDULED.value,
            provider=meeting.provider,
            meeting_id=meeting.meeting_id,
            join_url=meeting.join_url,
            start_url=meeting.start_url,
        )
        self._db.add(session)
        await self._db.commit()

        logger.info(
            "Live session scheduled: id=%s, batch=%s, provider=%s, start=%s",
            session.id,
            batch.id,
            meeting.provider,
            start.isoformat(),
        )
        return session

    async def mark_attendance(self, session_id: str, student_id: str, duration: int = 0) -> SessionAttendee:
        """Record that a student attended a session.

        Repeated calls keep the first join time and the longest duration.

        Raises:
            ValidationError: If duration is negative or the session was cancelled.
            NotFoundError: If the session does not exist.
            NotEnrolledError: If the student is not actively enrolled.
        """
        if duration < 0:
            raise ValidationError("duration must not be negative")

        session = await self._db.get(LiveSession, session_id)
        if session is None:
            raise NotFoundError(f"Live session not found: {session_id}")
        if session.status == SessionStatus.CANCELLED.value:
            raise ValidationError("Cannot record attendance for a cancelled session")
        batch_id = session.batch_id

        progress = ProgressService(self._db, clock=self._clock)
        await progress.ensure_enrolled(student_id, batch_id)

        attendee = await self._find_attendee(session_id, student_id)
        if attendee is None:
            attendee = SessionAttendee(
                session_id=session_id,
                student_id=student_id,
                joined_at=self._clock(),
                duration_minutes=duration,
            )
            self._db.add(attendee)
            try:
                await self._db.flush()
            except IntegrityError:
                await self._db.rollback()
                attendee = await self._find_attendee(session_id, student_id)
                if attendee is None:
                    raise
                attendee.duration_minutes = max(attendee.duration_minutes, duration)
        else:
            attendee.duration_minutes = max(attendee.duration_minutes, duration)

        await progress.record_session_attendance(
            student_id,
            batch_id,
            session_id,
            AttendanceStatus.PRESENT.value,
            attendee.duration_minutes,
        )

        logger.debug("Attendance recorded: session=%s, student=%s", session_id, student_id)
        return attendee

    async def _find_attendee(self, session_id: str, student_id: str) -> SessionAttendee | None:
        result = await self._db.execute(
            select(SessionAttendee).where(
                SessionAttendee.session_id == session_id,
                SessionAttendee.student_id == student_id,
            )
        )
        return result.scalar_one_or_none()
