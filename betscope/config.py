"""
BetScope - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No production secrets are hardcoded. Use .env for local development.
"""

from typing import List, Optional

from pydantic import validator
from pydantic_settings import BaseSettings


DEV_JWT_SECRET = "dev-secret-change-me-in-production-0f9e8d7c6b5a4"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        NODE_ENV: Deployment environment; "production" enables Secure cookies
        JWT_SECRET: HMAC key used to sign bearer tokens
        JWT_EXPIRES_IN: Bearer token TTL as a duration string ("15m", "1h")
        AUTH_COOKIE_NAME: Name of the httpOnly cookie carrying the token
        AUTH_COOKIE_DOMAIN: Optional cookie Domain attribute
        AUTH_COOKIE_SAMESITE: lax | strict | none (anything else means lax)
        AUTH_SESSION_CHECK: Consult the Session row on every verification
        GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_CALLBACK_URL: OAuth
        FRONTEND_URL: Where the OAuth callback redirects after login
    """

    APP_NAME: str = "BetScope"
    NODE_ENV: str = "development"

    # Security
    JWT_SECRET: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: str = "15m"
    REFRESH_TOKEN_EXPIRES_IN: str = "7d"
    SESSION_EXPIRES_IN: str = "7d"
    AUTH_SESSION_CHECK: bool = True

    # Cookies
    AUTH_COOKIE_NAME: str = "bs_token"
    AUTH_COOKIE_DOMAIN: Optional[str] = None
    AUTH_COOKIE_SAMESITE: str = "lax"
    AUTH_REFRESH_COOKIE_NAME: str = "bs_refresh"
    OAUTH_STATE_COOKIE_NAME: str = "bs_oauth_state"

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_CALLBACK_URL: str = "http://localhost:4000/auth/google/callback"
    FRONTEND_URL: str = "http://localhost:3000"

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./betscope.db"
    DB_CONNECT_TIMEOUT_SECONDS: int = 5
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    DB_POOL_TIMEOUT_SECONDS: int = 10

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @validator("JWT_SECRET")
    def jwt_secret_strength(cls, v, values):
        """Refuse the development secret when running in production."""
        if values.get("NODE_ENV") == "production" and (v == DEV_JWT_SECRET or len(v) < 32):
            raise ValueError("JWT_SECRET must be a unique secret of at least 32 characters in production")
        return v

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV.lower() == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
