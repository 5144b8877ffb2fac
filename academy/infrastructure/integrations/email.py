# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Outgoing email using async SMTP.

Two senders implement the EmailSender protocol:
- SMTPEmailSender: delivers through an SMTP server with aiosmtplib
- LoggingEmailSender: only logs the message, used when SMTP is not
  configured

Services never let an email failure break the operation that triggered
it; they call send_quietly() instead of send().

Configuration (via environment variables):
- SMTP_HOST: SMTP server hostname (unset disables delivery)
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME / SMTP_PASSWORD: SMTP credentials
- SMTP_USE_TLS: Use STARTTLS (default: true)
- SMTP_FROM_EMAIL / SMTP_FROM_NAME: Sender address and display name
"""

import html
import logging
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol, runtime_checkable

import aiosmtplib

from academy.core.config.settings import SMTPSettings
from academy.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


@runtime_checkable
class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> None: ...


class SMTPEmailSender:
    """Email sender backed by an SMTP server."""

    def __init__(self, settings: SMTPSettings) -> None:
        self._settings = settings

    def _build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = f"{self._settings.from_name} <{self._settings.from_email}>"
        message["To"] = to
        message["Subject"] = subject

        message.attach(MIMEText(html_to_text(html_body), "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    async def send(self, to: str, subject: str, html_body: str) -> None:
        """Send an HTML email.

        Raises:
            UpstreamError: If the SMTP server rejects or cannot be reached.
        """
        message = self._build_message(to, subject, html_body)
        password = self._settings.password.get_secret_value() if self._settings.password else None

        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=password,
                start_tls=self._settings.use_tls,
            )
        except aiosmtplib.SMTPException as e:
            raise UpstreamError(f"SMTP error: {e}", provider="smtp") from e

        logger.info("Email sent to %s: %s", to, subject)


class LoggingEmailSender:
    """Development sender that records messages in the log."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, subject: str, html_body: str) -> None:
        self.sent.append((to, subject))
        logger.info("Email (not delivered) to %s: %s", to, subject)


def html_to_text(html_body: str) -> str:
    """Rough plain-text alternative for an HTML body."""
    text = html_body
    for tag in ("<br>", "<br/>", "</p>", "</h2>", "</div>"):
        text = text.replace(tag, "\n")
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def get_email_sender(settings: SMTPSettings) -> EmailSender:
    """Pick the SMTP sender when a host is configured, else the logging one."""
    if settings.is_configured:
        return SMTPEmailSender(settings)
    logger.warning("Email delivery disabled: SMTP_HOST not set")
    return LoggingEmailSender()


async def send_quietly(sender: EmailSender, to: str, subject: str, html_body: str) -> bool:
    """Send an email, logging instead of raising on failure.

    Returns:
        True if the sender accepted the message.
    """
    try:
        await sender.send(to, subject, html_body)
        return True
    except (UpstreamError, OSError) as e:
        logger.error("Failed to send email to %s: %s", to, e, exc_info=True)
        return False
