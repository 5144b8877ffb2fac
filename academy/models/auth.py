# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    device_id: str | None = Field(None, max_length=64)
    device_name: str | None = Field(None, max_length=100)


class RefreshTokenRequest(BaseModel):
    refresh_token: str
    device_id: str | None = Field(None, max_length=64)


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class UserInfo(BaseModel):
    id: str
    email: str
    full_name: str
    role: str


class TokenResponse(BaseModel):
    """Issued tokens and the user they belong to."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    refresh_expires_in: int
    refresh_expires_at: datetime
    device_id: str
    user: UserInfo


class SessionInfo(BaseModel):
    device_id: str
    device_name: str
    browser: str
    os: str
    ip_address: str
    created_at: str | None = None
    last_used_at: str | None = None
    expires_at: str | None = None


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    total: int


class RevokeResponse(BaseModel):
    revoked: int
