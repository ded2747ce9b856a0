"""
Async SQLAlchemy engine, session factory and table bootstrap.
"""
from typing import AsyncGenerator, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine, AsyncEngine
from sqlalchemy.orm import declarative_base

from .core.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory used by the API, the orchestrator and the scheduler."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def create_engine(database_url: Optional[str] = None, **kwargs) -> AsyncEngine:
    settings = get_settings()
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo,
        **kwargs,
    )


engine = create_engine()
async_session = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session that is always closed."""
    async with async_session() as session:
        yield session


async def init_db(target_engine: Optional[AsyncEngine] = None):
    """Create all tables if they do not exist."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    target = target_engine or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database tables ensured: {sorted(Base.metadata.tables)}")
