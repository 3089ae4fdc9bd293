"""
Async SQLAlchemy engine and session factory.

PostgreSQL (``asyncpg``) in deployment; the same models also run on SQLite
(``aiosqlite``), which the test suite uses with one shared in-memory
connection.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from src.config import settings


def build_engine(url: str, **kwargs) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        kwargs.setdefault("poolclass", StaticPool)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=False, **kwargs)


def session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are read after commit when building responses and change events
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session_factory = session_factory(engine)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
