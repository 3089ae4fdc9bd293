"""Password hashing (bcrypt) and opaque session tokens."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import bcrypt

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), hashed.encode("utf-8"))
    except ValueError:
        return False


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def session_expiry(ttl_hours: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=ttl_hours)


def is_expired(expires_at: datetime) -> bool:
    # Some backends (SQLite) hand timestamps back without tzinfo
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)
