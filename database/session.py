"""
Async SQLAlchemy engine and session factory.

Stores receive ``async_session_factory`` and open one short session per
operation; there is no request-scoped session.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import config

logger = logging.getLogger(__name__)

engine = create_async_engine(
    config.database_url,
    echo=config.db_echo,
    pool_size=config.db_pool_size,
    max_overflow=config.db_max_overflow,
    pool_pre_ping=True,
    pool_recycle=1800,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def create_tables() -> None:
    """Create missing tables and constraints. Idempotent."""
    from database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def dispose_engine() -> None:
    await engine.dispose()
