# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication API endpoints.

- POST /login - Password login
- POST /refresh - Rotate a refresh token
- POST /logout - Blacklist the access token and revoke the refresh token
- POST /password - Change password, ends every session
- GET /sessions - List active device sessions
- DELETE /sessions/{device_id} - Revoke one device
- DELETE /sessions - Revoke every session
"""

import logging

from fastapi import APIRouter, Request, status

from academy.api.dependencies import Auth, AuthenticatedUser, Tokens
from academy.domains.auth import DeviceInfo, TokenPair
from academy.infrastructure.database.models import User
from academy.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RevokeResponse,
    SessionInfo,
    SessionListResponse,
    TokenResponse,
    UserInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_device_info(request: Request, device_id: str | None = None, device_name: str | None = None) -> DeviceInfo:
    """Extract device info from request headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None

    user_agent = request.headers.get("User-Agent", "")
    ua_lower = user_agent.lower()

    os_name = None
    for marker, name in (("android", "Android"), ("iphone", "iOS"), ("ipad", "iOS"), ("windows", "Windows"),
                         ("mac os", "macOS"), ("linux", "Linux")):
        if marker in ua_lower:
            os_name = name
            break

    browser = None
    for marker, name in (("edg/", "Edge"), ("chrome/", "Chrome"), ("firefox/", "Firefox"), ("safari/", "Safari")):
        if marker in ua_lower:
            browser = name
            break

    return DeviceInfo(
        device_id=device_id,
        device_name=device_name or (user_agent[:100] if user_agent else None),
        browser=browser,
        os=os_name,
        ip_address=ip,
        user_agent=user_agent[:500] if user_agent else None,
    )


def _token_response(tokens: TokenPair, user: User) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        refresh_expires_in=tokens.refresh_expires_in,
        refresh_expires_at=tokens.refresh_expires_at,
        device_id=tokens.device_id,
        user=UserInfo(id=user.id, email=user.email, full_name=user.full_name, role=user.role),
    )


@router.post("/login", response_model=TokenResponse)
async def login(request: Request, data: LoginRequest, auth: Auth) -> TokenResponse:
    """Authenticate with email and password."""
    device = _get_device_info(request, data.device_id, data.device_name)
    result = await auth.login(data.email, data.password, device)
    return _token_response(result.tokens, result.user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(request: Request, data: RefreshTokenRequest, tokens: Tokens) -> TokenResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is consumed; presenting it again revokes
    the device's sessions.
    """
    result = await tokens.rotate_refresh(data.refresh_token, _get_device_info(request, data.device_id))
    return _token_response(result.tokens, result.user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(data: LogoutRequest, user: AuthenticatedUser, auth: Auth) -> None:
    await auth.logout(user.token, data.refresh_token)


@router.post("/password", response_model=RevokeResponse)
async def change_password(data: ChangePasswordRequest, user: AuthenticatedUser, auth: Auth) -> RevokeResponse:
    revoked = await auth.change_password(user.id, data.current_password, data.new_password, access_token=user.token)
    return RevokeResponse(revoked=revoked)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(user: AuthenticatedUser, tokens: Tokens) -> SessionListResponse:
    devices = await tokens.active_devices(user.id)
    sessions = [SessionInfo(**device.to_dict()) for device in devices]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.delete("/sessions/{device_id}", response_model=RevokeResponse)
async def revoke_device(device_id: str, user: AuthenticatedUser, tokens: Tokens) -> RevokeResponse:
    return RevokeResponse(revoked=await tokens.revoke(user.id, device_id=device_id))


@router.delete("/sessions", response_model=RevokeResponse)
async def revoke_all_sessions(user: AuthenticatedUser, tokens: Tokens) -> RevokeResponse:
    return RevokeResponse(revoked=await tokens.revoke(user.id))
