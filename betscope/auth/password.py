"""
BetScope - Password Hashing Utilities

Password hashing using bcrypt. Work factor defaults to 12 and can be
lowered through BCRYPT_WORK_FACTOR for tests.

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- Supports hash upgrades on login
"""

import secrets

import bcrypt


# Work factor for bcrypt (2^12 = 4096 iterations)
BCRYPT_WORK_FACTOR = 12


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password

    Returns:
        bcrypt hash string (includes salt)

    Example:
        >>> hashed = hash_password("Abcd1234!")
        >>> hashed.startswith("$2b$")
        True
    """
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=BCRYPT_WORK_FACTOR)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Uses constant-time comparison to prevent timing attacks.

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        password_bytes = plain_password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError):
        # Invalid hash format
        return False


def needs_rehash(hashed_password: str, target_work_factor: int = None) -> bool:
    """
    Check if a password hash was produced with a lower work factor.

    Args:
        hashed_password: Existing bcrypt hash
        target_work_factor: Desired work factor (defaults to BCRYPT_WORK_FACTOR)

    Returns:
        True if hash should be regenerated
    """
    target = target_work_factor or BCRYPT_WORK_FACTOR
    try:
        # bcrypt hash format: $2b$XX$...
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target
    except (ValueError, IndexError):
        # Not a valid bcrypt hash, definitely needs rehash
        return True


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows, for accounts that only sign in externally."""
    return hash_password(secrets.token_urlsafe(32))
