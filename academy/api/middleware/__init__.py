# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

Exports:
    AuthMiddleware: JWT authentication middleware.
    ResponseCacheMiddleware: Cache for repeated GET responses.
"""

from academy.api.middleware.auth import AuthMiddleware, CurrentUser
from academy.api.middleware.response_cache import ResponseCacheMiddleware

__all__ = [
    "AuthMiddleware",
    "CurrentUser",
    "ResponseCacheMiddleware",
]
