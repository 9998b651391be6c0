"""Database engine lifecycle and request-scoped session management."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from autocontrol.core.config import settings
from autocontrol.core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

# Process-wide engine, created by init_db() at startup and released by dispose_db()
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine with pool and connect timeouts.

    Pool sizing only applies to server databases; SQLite (used in tests and
    local runs) manages its own connections.
    """
    url = database_url or settings.DATABASE_URL
    options: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,  # Verify connections before using them
    }

    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            connect_args={"timeout": settings.DB_CONNECT_TIMEOUT},
        )

    return create_async_engine(url, **options)


def init_db(database_url: Optional[str] = None) -> AsyncEngine:
    """Create the process-wide engine and session factory."""
    global engine, async_session_maker

    engine = build_engine(database_url)
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info("Database engine initialized", extra={"pool_timeout": settings.DB_POOL_TIMEOUT})
    return engine


async def dispose_db() -> None:
    """Close all pooled connections."""
    global engine, async_session_maker

    if engine is not None:
        await engine.dispose()
        logger.info("Database connections closed")
    engine = None
    async_session_maker = None


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session (context manager style).

    The session is rolled back if the block raises and always closed.

    Usage:
        async with get_db_session() as session:
            # Use session
            pass
    """
    if async_session_maker is None:
        logger.error("Database session requested before init_db()")
        raise StorageUnavailableError()

    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request.

    Usage:
        @router.get("/records")
        async def list_records(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_db_session() as session:
        yield session
