"""
BetScope - Identity Database Models

SQLModel-based models for accounts, devices, sessions and refresh tokens.
Uses PostgreSQL for production, SQLite for local development.

Ownership:
- A User owns its Devices, Sessions and RefreshTokens (cascade delete)
- A Session references its Device without owning it (set null on delete)

Security:
- Passwords stored as bcrypt hashes only
- Refresh tokens stored as SHA-256 digests only
- All timestamps are naive UTC
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Integer, String
from sqlalchemy import Enum as SQLEnum
from sqlmodel import Field, Relationship, SQLModel

from betscope.auth.errors import InvalidTransitionError


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what the columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    """User roles for route policies."""
    USER = "USER"
    MODERATOR = "MODERATOR"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    BANNED = "BANNED"


class SubscriptionPlan(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ULTRA = "ULTRA"


class DeviceType(str, Enum):
    DESKTOP = "DESKTOP"
    MOBILE = "MOBILE"
    TABLET = "TABLET"
    OTHER = "OTHER"


class DeviceStatus(str, Enum):
    UNTRUSTED = "UNTRUSTED"
    TRUSTED = "TRUSTED"
    BLOCKED = "BLOCKED"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class RefreshTokenStatus(str, Enum):
    ACTIVE = "ACTIVE"
    USED = "USED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


# Monthly quotas per plan: (predictions, chat messages)
USAGE_LIMITS = {
    SubscriptionPlan.FREE: (10, 50),
    SubscriptionPlan.PRO: (100, 500),
    SubscriptionPlan.ULTRA: (1000, 5000),
}

USAGE_PERIOD = timedelta(days=30)


class User(SQLModel, table=True):
    """
    Account identity.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier, stored lower-case (unique)
        username: Public handle, stored lower-case (unique)
        password_hash: bcrypt hash (never store plaintext)
        role: Role checked by route policies
        status: Account status; only ACTIVE accounts authenticate
        is_active: Mirror of status == ACTIVE, kept in sync by the users service
        monthly_predictions / monthly_chat_messages: Usage in the current period
        usage_period_start: Start of the current 30-day usage period
    """
    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    username: str = Field(sa_column=Column(String(100), unique=True, index=True, nullable=False))
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = Field(default=None, sa_column=Column(Date, nullable=True))
    country: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = Field(default=None, max_length=64)
    preferred_language: Optional[str] = Field(default=None, max_length=10)
    preferences: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    role: Role = Field(
        default=Role.USER,
        sa_column=Column(SQLEnum(Role), nullable=False, default=Role.USER),
    )
    status: UserStatus = Field(
        default=UserStatus.ACTIVE,
        sa_column=Column(SQLEnum(UserStatus), nullable=False, default=UserStatus.ACTIVE),
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    auth_provider: str = Field(default="local", max_length=20)
    email_verified: bool = Field(default=False)

    subscription_plan: SubscriptionPlan = Field(
        default=SubscriptionPlan.FREE,
        sa_column=Column(SQLEnum(SubscriptionPlan), nullable=False, default=SubscriptionPlan.FREE),
    )
    monthly_predictions: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    monthly_chat_messages: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    usage_period_start: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))

    last_login_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    last_login_ip: Optional[str] = Field(default=None, max_length=45)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    # Relationships
    devices: List["Device"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    sessions: List["Session"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    refresh_tokens: List["RefreshToken"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username

    def usage_limits(self) -> tuple:
        return USAGE_LIMITS.get(self.subscription_plan, USAGE_LIMITS[SubscriptionPlan.FREE])

    def can_use_predictions(self) -> bool:
        return self.monthly_predictions < self.usage_limits()[0]

    def can_use_chat(self) -> bool:
        return self.monthly_chat_messages < self.usage_limits()[1]

    def usage_period_elapsed(self) -> bool:
        start = self.usage_period_start or self.created_at
        return utcnow() - start >= USAGE_PERIOD

    def reset_usage_period(self) -> None:
        self.monthly_predictions = 0
        self.monthly_chat_messages = 0
        self.usage_period_start = utcnow()


class Device(SQLModel, table=True):
    """
    One fingerprinted client.

    Trust state is independent of any single session:
    UNTRUSTED -> TRUSTED, UNTRUSTED|TRUSTED -> BLOCKED. BLOCKED is terminal.
    """
    __tablename__ = "devices"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False, index=True)
    fingerprint: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    name: Optional[str] = Field(default=None, max_length=100)
    type: DeviceType = Field(
        default=DeviceType.OTHER,
        sa_column=Column(SQLEnum(DeviceType), nullable=False, default=DeviceType.OTHER),
    )
    status: DeviceStatus = Field(
        default=DeviceStatus.UNTRUSTED,
        sa_column=Column(SQLEnum(DeviceStatus), nullable=False, default=DeviceStatus.UNTRUSTED),
    )
    user_agent: Optional[str] = Field(default=None, max_length=512)
    last_seen_ip: Optional[str] = Field(default=None, max_length=45)
    location: Optional[str] = Field(default=None, max_length=100)
    last_seen_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    trusted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    blocked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    blocked_reason: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    # Relationships
    user: Optional[User] = Relationship(back_populates="devices")
    sessions: List["Session"] = Relationship(back_populates="device")

    @property
    def is_trusted(self) -> bool:
        return self.status == DeviceStatus.TRUSTED

    @property
    def is_blocked(self) -> bool:
        return self.status == DeviceStatus.BLOCKED

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.user_agent[:60] if self.user_agent else "Unknown Device"

    def trust(self) -> None:
        if self.is_blocked:
            raise InvalidTransitionError("Blocked devices cannot be trusted")
        if self.status == DeviceStatus.UNTRUSTED:
            self.status = DeviceStatus.TRUSTED
            self.trusted_at = utcnow()

    def block(self, reason: Optional[str] = None) -> None:
        if self.is_blocked:
            return
        self.status = DeviceStatus.BLOCKED
        self.blocked_at = utcnow()
        self.blocked_reason = reason

    def update_last_seen(self, ip: Optional[str] = None, location: Optional[str] = None) -> None:
        self.last_seen_at = utcnow()
        if ip:
            self.last_seen_ip = ip
        if location:
            self.location = location


class Session(SQLModel, table=True):
    """
    One authenticated client context.

    is_active is derived on every read: status == ACTIVE and expires_at > now.

    Attributes:
        token: Opaque unique handle for the session (never sent in a JWT)
        device_id: Device the session was opened from, if fingerprinted
        expires_at: Absolute expiry
        last_active_at: Last authenticated request seen for this session
    """
    __tablename__ = "sessions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False, index=True)
    device_id: Optional[UUID] = Field(
        default=None, foreign_key="devices.id", ondelete="SET NULL", nullable=True, index=True
    )
    token: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    status: SessionStatus = Field(
        default=SessionStatus.ACTIVE,
        sa_column=Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.ACTIVE),
    )
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    location: Optional[str] = Field(default=None, max_length=100)
    last_active_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    revoked_reason: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    # Relationships
    user: Optional[User] = Relationship(back_populates="sessions")
    device: Optional[Device] = Relationship(back_populates="sessions")

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE and self.expires_at > utcnow()

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()

    @property
    def is_revoked(self) -> bool:
        return self.status == SessionStatus.REVOKED

    def revoke(self, reason: Optional[str] = None) -> None:
        if self.status != SessionStatus.ACTIVE:
            return
        self.status = SessionStatus.REVOKED
        self.revoked_at = utcnow()
        self.revoked_reason = reason

    def expire(self) -> None:
        if self.status == SessionStatus.ACTIVE:
            self.status = SessionStatus.EXPIRED

    def update_activity(self, ip_address: Optional[str] = None, location: Optional[str] = None) -> None:
        self.last_active_at = utcnow()
        if ip_address:
            self.ip_address = ip_address
        if location:
            self.location = location

    def extend(self, minutes: int = 15) -> None:
        if self.is_active:
            self.expires_at = utcnow() + timedelta(minutes=minutes)


class RefreshToken(SQLModel, table=True):
    """
    Renewal credential, separate from the short-lived bearer token.

    Rotation: a refresh token is used exactly once; redeeming it marks it
    USED and issues a successor recorded in replaced_by.

    Attributes:
        token: SHA-256 digest of the secret handed to the client
        session_id: Session the token renews, if any
        replaced_by: Successor token id after rotation
    """
    __tablename__ = "refresh_tokens"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False, index=True)
    session_id: Optional[UUID] = Field(
        default=None, foreign_key="sessions.id", ondelete="SET NULL", nullable=True, index=True
    )
    token: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    status: RefreshTokenStatus = Field(
        default=RefreshTokenStatus.ACTIVE,
        sa_column=Column(SQLEnum(RefreshTokenStatus), nullable=False, default=RefreshTokenStatus.ACTIVE),
    )
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    used_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    revoked_reason: Optional[str] = Field(default=None, max_length=500)
    replaced_by: Optional[UUID] = Field(default=None)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    # Relationships
    user: Optional[User] = Relationship(back_populates="refresh_tokens")

    @property
    def is_active(self) -> bool:
        return self.status == RefreshTokenStatus.ACTIVE and self.expires_at > utcnow()

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()

    @property
    def is_used(self) -> bool:
        return self.status == RefreshTokenStatus.USED

    @property
    def is_revoked(self) -> bool:
        return self.status == RefreshTokenStatus.REVOKED

    def use(self) -> None:
        if not self.is_active:
            raise InvalidTransitionError("Refresh token is not active")
        self.status = RefreshTokenStatus.USED
        self.used_at = utcnow()

    def revoke(self, reason: Optional[str] = None) -> None:
        if self.status != RefreshTokenStatus.ACTIVE:
            return
        self.status = RefreshTokenStatus.REVOKED
        self.revoked_at = utcnow()
        self.revoked_reason = reason

    def expire(self) -> None:
        if self.status == RefreshTokenStatus.ACTIVE:
            self.status = RefreshTokenStatus.EXPIRED
