"""Password hashing with bcrypt.

bcrypt works on bytes and silently ignores everything past 72 bytes, so
passwords are encoded as UTF-8 and rejected when they are longer.
"""

from __future__ import annotations

import asyncio

import bcrypt

from sitehost.errors import InvalidFormat

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72


def validate_password(password: str) -> str:
    """Check password length limits.

    Raises:
        InvalidFormat: If the password is too short or too long for bcrypt.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidFormat(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidFormat(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return password


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison of a password against a stored hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        return False


async def hash_password_async(password: str, rounds: int = 12) -> str:
    """Hash off the event loop; bcrypt is deliberately slow."""
    return await asyncio.to_thread(hash_password, password, rounds)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)
