"""
Service Dependency Injection
FastAPI dependency providers for services
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import Config, get_config
from curation.app.database import get_db
from curation.services import (
    ActivityService,
    NotificationService,
    SharingService,
)


# ============================================================================
# Service Factories
# ============================================================================


def get_app_config() -> Config:
    return get_config()


def get_activity_service(
    db: AsyncSession = Depends(get_db), config: Config = Depends(get_app_config)
) -> ActivityService:
    """
    Dependency provider for ActivityService

    Usage in FastAPI:
        @router.get("/feed/global")
        async def global_feed(service: ActivityService = Depends(get_activity_service)):
            return await service.global_feed()
    """
    return ActivityService(db, config=config)


def get_notification_service(
    db: AsyncSession = Depends(get_db), config: Config = Depends(get_app_config)
) -> NotificationService:
    return NotificationService(db, config=config)


def get_sharing_service(
    db: AsyncSession = Depends(get_db), config: Config = Depends(get_app_config)
) -> SharingService:
    return SharingService(db, config=config)
