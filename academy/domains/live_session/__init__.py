# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Live session domain.

Exports:
    LiveSessionService: Schedule sessions and record attendance.
"""

from academy.domains.live_session.service import LiveSessionService

__all__ = ["LiveSessionService"]
