# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for Academy.

Example:
    >>> from academy.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from academy.core.config.settings import (
    AuthSettings,
    CacheSettings,
    DatabaseSettings,
    JWTSettings,
    PaymentSettings,
    RedisSettings,
    SchedulerSettings,
    Settings,
    SMTPSettings,
    VideoSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "RedisSettings",
    "JWTSettings",
    "AuthSettings",
    "CacheSettings",
    "SMTPSettings",
    "PaymentSettings",
    "SchedulerSettings",
    "VideoSettings",
]
