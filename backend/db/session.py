# backend/db/session.py
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


def _engine_options(url: str) -> dict:
    """Bounded waits for pooled servers; SQLite (tests, local dev) takes the defaults."""
    if url.startswith("sqlite"):
        return {}
    options = {"pool_pre_ping": True, "pool_timeout": settings.DB_POOL_TIMEOUT}
    if "+asyncpg" in url:
        options["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT}
    return options


# Async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.APP_ENV == "development",
    **_engine_options(settings.DATABASE_URL),
)

# Session factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session (and one transaction) per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency: session factory for work that outlives the request session."""
    return AsyncSessionLocal
