# curation/app/database.py
"""
Database Session Dependencies
FastAPI wiring over the async database manager
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from curation.infrastructure.database import db_manager

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Initialize database tables
    Creates all tables defined by models
    """
    await db_manager.create_tables()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Usage in FastAPI:
        @router.get("/notifications")
        async def list_notifications(db: AsyncSession = Depends(get_db)):
            ...

    Yields:
        Database session
    """
    async with db_manager.session() as session:
        yield session


async def check_connection() -> bool:
    """Run `SELECT 1` against the configured database"""
    try:
        async with db_manager.session() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar_one() == 1
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        return False


async def reset_database() -> None:
    """
    Reset database by dropping and recreating all tables
    Only use in development/testing
    """
    logger.warning("⚠️  Resetting database...")
    await db_manager.drop_tables()
    await db_manager.create_tables()
    logger.info("✅ Database reset complete")
