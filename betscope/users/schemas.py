"""
BetScope - User Management Schemas
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator

from betscope.auth.schemas import USERNAME_RE, UserResponse, validate_password_strength


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /users/me. Omitted fields are left unchanged."""
    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    country: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = Field(default=None, max_length=64)
    preferred_language: Optional[str] = Field(default=None, max_length=10)

    @validator("username")
    def username_format(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v or not USERNAME_RE.match(v):
            raise ValueError("Username may only contain letters, digits, '.', '_' and '-'")
        return v.lower()


class ChangePasswordRequest(BaseModel):
    """Request body for POST /users/me/password."""
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., max_length=128)

    @validator("new_password")
    def password_strength(cls, v):
        return validate_password_strength(v)


class PreferencesRequest(BaseModel):
    """Request body for PUT /users/me/preferences. Keys are merged into the stored preferences."""
    preferences: Dict[str, Any]


class ProfileResponse(UserResponse):
    """Full profile, visible to the account owner and staff."""
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    preferred_language: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    last_login_ip: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "ProfileResponse":
        base = UserResponse.from_user(user).model_dump()
        return cls(
            **base,
            phone_number=user.phone_number,
            date_of_birth=user.date_of_birth,
            country=user.country,
            timezone=user.timezone,
            preferred_language=user.preferred_language,
            preferences=user.preferences or {},
            last_login_ip=user.last_login_ip,
            updated_at=user.updated_at,
        )


class UsageResponse(BaseModel):
    """Monthly quota usage for the current period."""
    subscription_plan: str
    monthly_predictions: int
    prediction_limit: int
    monthly_chat_messages: int
    chat_message_limit: int
    usage_period_start: Optional[datetime] = None
    usage_period_resets_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    users: List[ProfileResponse]
    total: int
    page: int
    limit: int


class UserStatsResponse(BaseModel):
    total_users: int
    active_users: int
    subscribed_users: int
    new_users_today: int


class MessageResponse(BaseModel):
    message: str
    sessions_revoked: int = 0
