"""
BetScope - Authentication Package

- bcrypt password hashing
- HS256 access tokens carried in httpOnly cookies or Bearer headers
- Server-side sessions, devices and rotating refresh tokens
- Google sign-in
"""

from betscope.auth.models import Device, RefreshToken, Role, Session, User

__all__ = [
    "User",
    "Device",
    "Session",
    "RefreshToken",
    "Role",
]
