"""Database session configuration"""

import logging
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import (
    DATABASE_URL,
    MAX_OVERFLOW,
    POOL_RECYCLE,
    POOL_SIZE,
    POOL_TIMEOUT,
)

logger = logging.getLogger(__name__)


def to_async_url(url: str) -> str:
    """
    Convert a database URL to its async driver form.

    postgresql:// and legacy postgresql+asyncpg:// URLs are mapped to
    postgresql+psycopg://; sqlite URLs must already name aiosqlite.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql+psycopg://"):
        return url
    if url.startswith("postgresql+asyncpg://"):
        # Legacy support: convert asyncpg URLs to psycopg
        return url.replace("postgresql+asyncpg://", "postgresql+psycopg://", 1)
    if url.startswith("sqlite+aiosqlite://"):
        return url
    raise ValueError(f"Unsupported database URL format: {url}")


def create_engine_for(url: str):
    """Create an async engine; pool sizing applies to PostgreSQL only"""
    async_url = to_async_url(url)
    if async_url.startswith("sqlite"):
        return create_async_engine(async_url, echo=False)
    return create_async_engine(
        async_url,
        pool_pre_ping=True,  # Verify connections before using them
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,  # Set to True to see SQL queries in logs
    )


def create_session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


engine = create_engine_for(DATABASE_URL)

# Create async session factory
SessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function for FastAPI routes.

    Usage:
        @app.get("/example")
        async def example(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Dependency for code that opens one session per unit of work"""
    return SessionLocal


# Add event listeners to monitor connection pool activity
# Note: For async engines, we listen to the sync_engine
from sqlalchemy import event  # noqa: E402


@event.listens_for(engine.sync_engine, "invalidate")
def on_invalidate(dbapi_conn, connection_record, exception):
    """Log when a connection is invalidated"""
    logger.warning(
        f"Database connection invalidated: {exception}",
        exc_info=exception
    )
