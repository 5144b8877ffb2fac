# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""External provider integrations: email, payments and video."""

from academy.infrastructure.integrations.email import (
    EmailSender,
    LoggingEmailSender,
    SMTPEmailSender,
    get_email_sender,
    send_quietly,
)
from academy.infrastructure.integrations.payment import (
    PaymentGateway,
    PaymentOrder,
    StubPaymentGateway,
)
from academy.infrastructure.integrations.video import (
    GoogleMeetVideoProvider,
    InHouseVideoProvider,
    SessionDetails,
    VideoProvider,
    VideoSession,
    ZoomVideoProvider,
    get_video_provider,
)

__all__ = [
    # Email
    "EmailSender",
    "SMTPEmailSender",
    "LoggingEmailSender",
    "get_email_sender",
    "send_quietly",
    # Payments
    "PaymentGateway",
    "PaymentOrder",
    "StubPaymentGateway",
    # Video
    "VideoProvider",
    "VideoSession",
    "SessionDetails",
    "InHouseVideoProvider",
    "ZoomVideoProvider",
    "GoogleMeetVideoProvider",
    "get_video_provider",
]
