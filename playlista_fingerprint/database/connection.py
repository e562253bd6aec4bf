"""
Async database connection management for Playlista fingerprinting
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import get_settings
from ..core.logging import get_logger
from .models import Base

logger = get_logger("database")

# Global database engine and session maker
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db(database_url: Optional[str] = None, echo: Optional[bool] = None,
                  create_tables: bool = True) -> async_sessionmaker:
    """Initialize the database engine and return the session maker"""
    global engine, async_session_maker

    settings = get_settings()
    url = database_url or settings.database_url

    logger.info("Initializing database connection", database=url.split("://")[0])

    engine = create_async_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
    )

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        async with engine.begin() as conn:
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")
    except Exception as e:
        logger.error("Database connection failed", error=e)
        await close_db()
        raise

    return async_session_maker


async def close_db() -> None:
    """Close database connections"""
    global engine, async_session_maker

    if engine is not None:
        await engine.dispose()
        logger.info("Database connection closed")

    engine = None
    async_session_maker = None


def get_session_maker() -> async_sessionmaker:
    """Get the initialized session maker"""
    if async_session_maker is None:
        raise RuntimeError("Database not initialized")
    return async_session_maker
