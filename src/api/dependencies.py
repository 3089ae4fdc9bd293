"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.gateway import PaymentGateway, StripeGateway
from src.infrastructure.models import AuthSessionModel, UserModel
from src.infrastructure.realtime import ChangeFeed, RedisChangeFeed
from src.infrastructure.repositories import AuthSessionRepository, UserRepository
from src.infrastructure.security import is_expired

_bearer = HTTPBearer(auto_error=False)
_redis_pool: Optional[aioredis.ConnectionPool] = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_change_feed() -> ChangeFeed:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
    return RedisChangeFeed(aioredis.Redis(connection_pool=_redis_pool))


def get_gateway() -> PaymentGateway:
    return StripeGateway(settings.stripe_secret_key, settings.stripe_api_version)


async def resolve_session(
    db: AsyncSession, token: Optional[str]
) -> Optional[tuple[AuthSessionModel, UserModel]]:
    """Look up a bearer token; ``None`` for missing, unknown or expired tokens."""
    if not token:
        return None
    auth = await AuthSessionRepository(db).get(token)
    if auth is None or is_expired(auth.expires_at):
        return None
    user = await UserRepository(db).get_by_id(auth.user_id)
    if user is None:
        return None
    return auth, user


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    return credentials.credentials if credentials else None


async def get_current_session(
    token: Optional[str] = Depends(bearer_token),
    db: AsyncSession = Depends(get_db),
) -> tuple[AuthSessionModel, UserModel]:
    resolved = await resolve_session(db, token)
    if resolved is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return resolved


async def get_current_user(
    current: tuple[AuthSessionModel, UserModel] = Depends(get_current_session),
) -> UserModel:
    return current[1]


async def require_admin(user: UserModel = Depends(get_current_user)) -> UserModel:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
