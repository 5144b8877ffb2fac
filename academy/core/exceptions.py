# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy shared by all Academy domains.

This module defines the exception categories that services raise and the
API layer translates into HTTP responses:
- AcademyError: Base exception for all domain errors
- ValidationError: Bad input shape or range (400)
- AuthError: Bad, expired or blacklisted token, locked account (401)
- AuthorizationError: Role or ownership mismatch (403)
- NotFoundError: Missing entity (404)
- ConflictError: Duplicate enrollment and similar uniqueness clashes (409)
- UpstreamError: Email, payment or video provider failure (502)

Domain modules subclass these categories for their specific failures, for
example ``TokenExpiredError(AuthError)`` or ``NotEnrolledError(NotFoundError)``.
"""


class AcademyError(Exception):
    """Base exception for all Academy domain errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
        status_code: HTTP status used by the API layer.
        code: Stable machine-readable error code.
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, details: dict | None = None):
        """Initialize the error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Serialize the error for an API response body."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AcademyError):
    """Raised when input has a bad shape or is out of range."""

    status_code = 400
    code = "validation_error"


class AuthError(AcademyError):
    """Raised when credentials or tokens cannot be accepted."""

    status_code = 401
    code = "authentication_error"


class AuthorizationError(AcademyError):
    """Raised when the caller lacks the role or ownership required."""

    status_code = 403
    code = "authorization_error"


class NotFoundError(AcademyError):
    """Raised when a referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(AcademyError):
    """Raised when an operation would violate a uniqueness rule."""

    status_code = 409
    code = "conflict"


class UpstreamError(AcademyError):
    """Raised when an external provider fails.

    Attributes:
        provider: Name of the failing provider.
    """

    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str, provider: str | None = None, details: dict | None = None):
        """Initialize upstream error.

        Args:
            message: Human-readable error description.
            provider: Name of the failing provider.
            details: Optional dictionary with additional error context.
        """
        self.provider = provider
        super().__init__(message, details)

    def __str__(self) -> str:
        """Return string representation with provider name."""
        base = super().__str__()
        if self.provider:
            return f"[{self.provider}] {base}"
        return base
