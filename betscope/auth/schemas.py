"""
BetScope - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.
"""

import re
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator


EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")


def validate_email(v: str) -> str:
    v = v.strip()
    if not EMAIL_RE.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


def validate_password_strength(v: str) -> str:
    """Enforce password strength requirements."""
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one digit")
    return v


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: str = Field(..., description="User email address")
    password: str = Field(..., min_length=1, max_length=128, description="User password")

    @validator("email")
    def email_format(cls, v):
        return validate_email(v)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""
    email: str
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., max_length=128)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)

    @validator("email")
    def email_format(cls, v):
        return validate_email(v)

    @validator("username")
    def username_format(cls, v):
        v = v.strip()
        if not v or not USERNAME_RE.match(v):
            raise ValueError("Username may only contain letters, digits, '.', '_' and '-'")
        return v.lower()

    @validator("password")
    def password_strength(cls, v):
        return validate_password_strength(v)


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh. Browsers send the refresh cookie instead."""
    refresh_token: Optional[str] = Field(default=None, description="Refresh token")


class LogoutRequest(BaseModel):
    """Request body for POST /auth/logout (optional)."""
    all_sessions: bool = Field(
        default=False,
        description="Revoke all sessions (logout everywhere)"
    )


class UserResponse(BaseModel):
    """Public view of a user account."""
    id: UUID
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    role: str
    status: str
    subscription_plan: str
    auth_provider: str
    email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar=user.avatar,
            role=user.role.value,
            status=user.status.value,
            subscription_plan=user.subscription_plan.value,
            auth_provider=user.auth_provider,
            email_verified=user.email_verified,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    """Response body for login, register and refresh."""
    user: UserResponse
    access_token: str = Field(..., description="JWT access token (also set as cookie)")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Seconds until token expires")
    message: str


class LogoutResponse(BaseModel):
    """Response body for logout."""
    message: str = Field(default="Logged out")
    sessions_revoked: int = Field(default=0)


class SessionInfo(BaseModel):
    """Session information for user display."""
    id: UUID
    device_id: Optional[UUID] = None
    status: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None
    last_active_at: Optional[datetime] = None
    expires_at: datetime
    created_at: datetime
    is_current: bool = False


class ActiveSessionsResponse(BaseModel):
    """Response body for GET /auth/sessions."""
    sessions: List[SessionInfo]
    total: int


class DeviceInfo(BaseModel):
    """Device information for user display."""
    id: UUID
    name: str
    type: str
    status: str
    last_seen_ip: Optional[str] = None
    location: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    trusted_at: Optional[datetime] = None
    blocked_at: Optional[datetime] = None
    blocked_reason: Optional[str] = None
    created_at: datetime


class DevicesResponse(BaseModel):
    devices: List[DeviceInfo]
    total: int


class BlockDeviceRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
    request_id: Optional[str] = None
