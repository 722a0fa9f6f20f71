"""SQLAlchemy async engine and session factory configuration."""

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def create_db_engine(database_url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create and configure an async SQLAlchemy engine.

    Pool sizing only applies to server databases; SQLite uses the
    dialect's default pool.
    """
    url = database_url or settings.DATABASE_URL
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO, future=True)
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=1800,
        )
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory instances
engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


@asynccontextmanager
async def worker_session_factory():
    """Provide a session factory on a fresh engine, safe for Celery workers.

    Forked workers run each task in a new event loop, so pooled asyncpg
    connections from the global engine cannot be reused there.

    Usage:
        async with worker_session_factory() as session_factory:
            sweeper = RetrySweeper(session_factory, ...)
    """
    worker_engine = create_db_engine()
    try:
        yield create_session_factory(worker_engine)
    finally:
        await worker_engine.dispose()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create tables for all registered models."""
    from db.base import Base
    import db.models  # noqa: F401  registers models on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
