"""
BetScope - Database Configuration

SQLModel database setup with connection pooling and fail-fast timeouts.
Supports PostgreSQL (production) and SQLite (development and tests).

Usage:
    from betscope.auth.database import get_engine, init_db

    engine = get_engine()
    init_db(engine)  # Creates tables
"""

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from betscope.config import settings


def get_engine(database_url: str = None, echo: bool = False):
    """
    Create SQLAlchemy engine with appropriate configuration.

    PostgreSQL connections get a connect timeout, a per-statement timeout
    and a bounded wait for a pooled connection.

    Args:
        database_url: Override settings.DATABASE_URL
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            },
            poolclass=StaticPool,
        )

        # SQLite only enforces ON DELETE clauses with foreign_keys on
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
            connect_args={
                "connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
                "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
            },
        )

    return engine


def init_db(engine) -> None:
    """
    Initialize database tables.

    Safe to call multiple times (uses CREATE IF NOT EXISTS).
    """
    # Import models to register them with SQLModel
    from betscope.auth.models import Device, RefreshToken, Session, User  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session_factory(engine):
    """
    Create a session factory bound to engine.

    Returns:
        Callable that creates new database sessions
    """
    def session_factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return session_factory
