"""
BetScope - Database Seed Script

Creates a development admin plus one account per role and plan.

Usage:
    python -m scripts.seed_users [--demo]
"""

import argparse

from sqlmodel import Session, select

from betscope.auth.credentials import normalize_email
from betscope.auth.database import get_engine, init_db
from betscope.auth.models import Role, SubscriptionPlan, User, utcnow
from betscope.auth.password import hash_password
from betscope.config import settings


ADMIN = ("admin@betscope.local", "admin", "Admin@BetScope2024", Role.ADMIN, SubscriptionPlan.ULTRA)

DEMO_USERS = [
    ("moderator@betscope.local", "moderator", "Moderator@2024", Role.MODERATOR, SubscriptionPlan.FREE),
    ("free@betscope.local", "freefan", "FreeFan@2024", Role.USER, SubscriptionPlan.FREE),
    ("pro@betscope.local", "profan", "ProFan@2024", Role.USER, SubscriptionPlan.PRO),
]


def _create(session: Session, email: str, username: str, password: str, role: Role, plan: SubscriptionPlan) -> bool:
    email = normalize_email(email)
    if session.exec(select(User).where(User.email == email)).first() is not None:
        print(f"User {email} already exists.")
        return False

    now = utcnow()
    session.add(User(
        email=email,
        username=username,
        password_hash=hash_password(password),
        role=role,
        subscription_plan=plan,
        is_active=True,
        email_verified=True,
        usage_period_start=now,
        created_at=now,
        updated_at=now,
    ))
    print(f"Created user: {email} ({role.value}, {plan.value}) password={password}")
    return True


def seed_users(include_demo: bool = False) -> int:
    """Create the seed accounts that are missing. Returns how many were created."""
    if settings.is_production:
        raise SystemExit("Refusing to seed development users in production")

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    accounts = [ADMIN] + (DEMO_USERS if include_demo else [])
    created = 0
    with Session(engine) as session:
        for account in accounts:
            created += int(_create(session, *account))
        session.commit()
    return created


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed BetScope development users")
    parser.add_argument("--demo", action="store_true", help="Also create moderator and plan demo users")
    args = parser.parse_args()

    print("=" * 50)
    print("BetScope - User Seed Script")
    print("=" * 50)
    print(f"Created {seed_users(include_demo=args.demo)} user(s).")
