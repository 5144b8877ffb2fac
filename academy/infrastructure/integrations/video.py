# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Video providers for live sessions.

The in-house provider generates signed host and join links locally. Zoom
and Google Meet need provider credentials and API clients that are not
part of this deployment; their providers raise UpstreamError so a session
is never scheduled with a fake meeting link.
"""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from academy.core.config.settings import VideoSettings
from academy.core.exceptions import UpstreamError, ValidationError
from academy.infrastructure.database.models import VideoProviderName

logger = logging.getLogger(__name__)


@dataclass
class SessionDetails:
    title: str
    scheduled_start: datetime
    duration_minutes: int
    host_id: str


@dataclass
class VideoSession:
    """Links and identifiers returned by a provider."""

    provider: str
    meeting_id: str
    join_url: str
    start_url: str
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class VideoProvider(Protocol):
    async def create_session(self, details: SessionDetails) -> VideoSession: ...


class InHouseVideoProvider:
    """Self-hosted meeting rooms with HMAC-signed links."""

    name = VideoProviderName.INHOUSE.value

    def __init__(self, settings: VideoSettings) -> None:
        self._base_url = settings.inhouse_base_url.rstrip("/")
        self._secret = settings.inhouse_secret.get_secret_value().encode()

    def _token(self, subject: str, room_id: str, role: str) -> str:
        body = f"{subject}:{room_id}:{role}".encode()
        return hmac.new(self._secret, body, hashlib.sha256).hexdigest()

    async def create_session(self, details: SessionDetails) -> VideoSession:
        room_id = str(uuid.uuid4())
        host_token = self._token(details.host_id, room_id, "host")
        join_token = self._token("*", room_id, "participant")

        return VideoSession(
            provider=self.name,
            meeting_id=room_id,
            join_url=f"{self._base_url}/join/{room_id}?token={join_token}",
            start_url=f"{self._base_url}/host/{room_id}?token={host_token}",
            metadata={
                "title": details.title,
                "scheduled_start": details.scheduled_start.isoformat(),
                "duration_minutes": details.duration_minutes,
            },
        )


class ZoomVideoProvider:
    name = VideoProviderName.ZOOM.value

    async def create_session(self, details: SessionDetails) -> VideoSession:
        raise UpstreamError("Zoom integration is not configured", provider=self.name)


class GoogleMeetVideoProvider:
    name = VideoProviderName.GOOGLE_MEET.value

    async def create_session(self, details: SessionDetails) -> VideoSession:
        raise UpstreamError("Google Meet integration is not configured", provider=self.name)


def get_video_provider(name: str, settings: VideoSettings) -> VideoProvider:
    """Return the provider registered under name.

    Raises:
        ValidationError: If the provider is unknown.
    """
    try:
        provider = VideoProviderName(name)
    except ValueError as e:
        raise ValidationError(f"Unsupported video provider: {name}") from e

    if provider is VideoProviderName.INHOUSE:
        return InHouseVideoProvider(settings)
    if provider is VideoProviderName.ZOOM:
        return ZoomVideoProvider()
    return GoogleMeetVideoProvider()
