# curation/infrastructure/repositories/notification_repository.py
"""
Notification Repository
Notification persistence and read-state transitions
"""

from typing import List, Optional
from datetime import datetime
from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging

from .base import BaseRepository
from curation.app.models import Notification

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Notification)

    async def list_for_user(
        self,
        user_id: int,
        type: Optional[str] = None,
        read: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        """
        List a user's notifications, newest first

        Args:
            user_id: Recipient
            type: Optional notification type filter
            read: True for read only, False for unread only, None for all
            skip: Pagination offset
            limit: Max results

        Returns:
            Notifications with the actor eagerly loaded
        """
        try:
            query = (
                select(Notification)
                .options(selectinload(Notification.actor))
                .where(Notification.user_id == user_id)
            )
            if type:
                query = query.where(Notification.type == type)
            if read is True:
                query = query.where(Notification.read_at.is_not(None))
            elif read is False:
                query = query.where(Notification.read_at.is_(None))

            result = await self.session.execute(
                query.order_by(desc(Notification.created_at), desc(Notification.id))
                .offset(skip)
                .limit(limit)
            )
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to list notifications: {e}")
            raise

    async def unread_count(self, user_id: int) -> int:
        try:
            result = await self.session.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read_at.is_(None))
            )
            return int(result.scalar_one_or_none() or 0)
        except Exception as e:
            logger.error(f"❌ Failed to count unread notifications: {e}")
            raise

    async def set_read_at(
        self, notification: Notification, read_at: Optional[datetime], now: datetime
    ) -> bool:
        """
        Transition read state atomically

        Marking read only touches rows whose read_at is NULL; marking unread
        only touches rows whose read_at is set, so repeated calls are no-ops.

        Args:
            notification: Target notification
            read_at: Timestamp to mark read, or None to mark unread
            now: updated_at for the change

        Returns:
            True if the row changed
        """
        guard = (
            Notification.read_at.is_(None)
            if read_at is not None
            else Notification.read_at.is_not(None)
        )
        try:
            result = await self.session.execute(
                update(Notification)
                .where(Notification.id == notification.id)
                .where(guard)
                .values(read_at=read_at, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            await self.session.refresh(notification)
            return result.rowcount == 1
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to update read state of {notification.id}: {e}")
            raise

    async def mark_all_read(self, user_id: int, now: datetime) -> int:
        """Mark every unread notification of a user read; returns count"""
        try:
            result = await self.session.execute(
                update(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read_at.is_(None))
                .values(read_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            return int(result.rowcount or 0)
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to mark all notifications read: {e}")
            raise

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete notifications created before cutoff"""
        return await self.delete_where(Notification.created_at < cutoff)
