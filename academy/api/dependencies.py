# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

Dependencies are used to:
- Get database sessions
- Get authenticated users (signature checked by AuthMiddleware,
  blacklist checked here)
- Get service instances

Example:
    @router.get("/dashboard")
    async def dashboard(db: DB, user: AuthenticatedUser):
        ...
"""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from academy.api.middleware.auth import CurrentUser, get_current_user
from academy.core.config import get_settings
from academy.domains.analytics import AnalyticsCalculator
from academy.domains.auth import AuthService, JWTManager, PasswordHasher, TokenService
from academy.domains.enrollment import EnrollmentService
from academy.domains.progress import ProgressService
from academy.infrastructure.cache import get_cache
from academy.infrastructure.database.connection import get_sessionmaker
from academy.infrastructure.integrations import StubPaymentGateway, get_email_sender

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session.

    Services commit their own work; anything left open is rolled back
    when the request ends.
    """
    async with get_sessionmaker()() as session:
        yield session


def get_jwt_manager() -> JWTManager:
    return JWTManager(get_settings().jwt)


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().auth.bcrypt_rounds)


async def get_token_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    jwt_manager: Annotated[JWTManager, Depends(get_jwt_manager)],
) -> TokenService:
    return TokenService(db, jwt_manager, get_settings().jwt)


async def get_auth_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> AuthService:
    return AuthService(db, token_service, get_settings().auth, hasher=hasher)


async def require_auth(
    request: Request,
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> CurrentUser:
    """Require an authenticated user whose token is not blacklisted.

    Raises:
        HTTPException: 401 if the token is missing, invalid or revoked.
    """
    user = get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await token_service.is_blacklisted(user.token):
        logger.info("Blacklisted token presented by user %s", user.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


class RequireRole:
    """Dependency for requiring one of several roles.

    Example:
        @router.get("/system")
        async def system(user: CurrentUser = Depends(RequireRole("admin"))):
            ...
    """

    def __init__(self, *roles: str) -> None:
        self.roles = roles

    def __call__(self, user: Annotated[CurrentUser, Depends(require_auth)]) -> CurrentUser:
        if not user.has_any_role(*self.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(self.roles)}",
            )
        return user


require_admin = RequireRole("admin", "super_admin")
require_instructor_or_admin = RequireRole("instructor", "admin", "super_admin")
require_student = RequireRole("student")


async def get_progress_service(db: Annotated[AsyncSession, Depends(get_db)]) -> ProgressService:
    return ProgressService(db)


async def get_analytics_calculator(db: Annotated[AsyncSession, Depends(get_db)]) -> AnalyticsCalculator:
    return AnalyticsCalculator(db, get_cache(), get_settings().cache)


async def get_enrollment_service(db: Annotated[AsyncSession, Depends(get_db)]) -> EnrollmentService:
    settings = get_settings()
    return EnrollmentService(
        db,
        StubPaymentGateway(settings.payment),
        get_email_sender(settings.smtp),
        settings.payment,
    )


DB = Annotated[AsyncSession, Depends(get_db)]
AuthenticatedUser = Annotated[CurrentUser, Depends(require_auth)]
AdminUser = Annotated[CurrentUser, Depends(require_admin)]
InstructorOrAdmin = Annotated[CurrentUser, Depends(require_instructor_or_admin)]
StudentUser = Annotated[CurrentUser, Depends(require_student)]
Tokens = Annotated[TokenService, Depends(get_token_service)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
Progress = Annotated[ProgressService, Depends(get_progress_service)]
Analytics = Annotated[AnalyticsCalculator, Depends(get_analytics_calculator)]
Enrollments = Annotated[EnrollmentService, Depends(get_enrollment_service)]
