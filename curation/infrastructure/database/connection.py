# curation/infrastructure/database/connection.py
"""
Async Database Connection Management
Engine, session factory and declarative base shared by all models
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from curation.app.config import get_config

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


class DatabaseManager:
    """
    Owns the async engine and session factory

    Usage:
        async with db_manager.session() as session:
            repo = ActivityRepository(session)
            ...
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        config = get_config()
        self.url = url or config.database.url

        engine_kwargs = {"echo": config.database.echo if echo is None else echo}
        if not self.url.startswith("sqlite"):
            engine_kwargs["pool_size"] = config.database.pool_size
            engine_kwargs["max_overflow"] = config.database.max_overflow

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_tables(self) -> None:
        """Create all tables defined by models"""
        # Register every model on Base.metadata
        import curation.app.models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("✅ Database tables created successfully")
        except Exception as e:
            logger.error(f"❌ Failed to create database tables: {e}")
            raise

    async def drop_tables(self) -> None:
        """
        Drop all tables (use with caution!)
        Only use in development/testing
        """
        import curation.app.models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            logger.warning("⚠️  All tables dropped")
        except Exception as e:
            logger.error(f"❌ Failed to drop tables: {e}")
            raise

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session, rolling back on error"""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Dispose engine connections"""
        await self.engine.dispose()
        logger.info("🔌 Database connections closed")


db_manager = DatabaseManager()
