# curation/infrastructure/repositories/share_repository.py
"""
Share Repository
Collection share persistence and analytics counters
"""

from typing import List, Dict, Any, Optional
from datetime import datetime
from sqlalchemy import select, update, func, desc, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging

from .base import BaseRepository
from curation.app.models import CollectionShare

logger = logging.getLogger(__name__)


def active_clause(now: datetime):
    """Shares with no expiry or an expiry in the future"""
    return or_(CollectionShare.expires_at.is_(None), CollectionShare.expires_at > now)


def expired_clause(now: datetime):
    return and_(CollectionShare.expires_at.is_not(None), CollectionShare.expires_at <= now)


class ShareRepository(BaseRepository[CollectionShare]):
    """Repository for CollectionShare operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CollectionShare)

    async def list_for_collection(
        self, collection_id: int, active_at: Optional[datetime] = None, limit: int = 100
    ) -> List[CollectionShare]:
        """
        Shares of a collection, newest first

        Args:
            collection_id: Collection
            active_at: If given, only shares still active at this time
            limit: Max results

        Returns:
            Shares with the sharing user eagerly loaded
        """
        try:
            query = (
                select(CollectionShare)
                .options(selectinload(CollectionShare.user))
                .where(CollectionShare.collection_id == collection_id)
            )
            if active_at is not None:
                query = query.where(active_clause(active_at))

            result = await self.session.execute(
                query.order_by(desc(CollectionShare.created_at), desc(CollectionShare.id))
                .limit(limit)
            )
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to list shares for collection: {e}")
            raise

    async def list_for_user(self, user_id: int, limit: int = 100) -> List[CollectionShare]:
        try:
            result = await self.session.execute(
                select(CollectionShare)
                .options(selectinload(CollectionShare.collection))
                .where(CollectionShare.user_id == user_id)
                .order_by(desc(CollectionShare.created_at), desc(CollectionShare.id))
                .limit(limit)
            )
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to list shares for user: {e}")
            raise

    async def replace_analytics(
        self, share: CollectionShare, analytics: Dict[str, Any], now: datetime
    ) -> bool:
        """
        Swap the analytics bag if nobody changed it since it was read

        Returns:
            True if committed, False on a concurrent change
        """
        try:
            result = await self.session.execute(
                update(CollectionShare)
                .where(CollectionShare.id == share.id)
                .where(CollectionShare.updated_at == share.updated_at)
                .values(analytics=analytics, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.session.rollback()
                return False
            await self.session.commit()
            await self.session.refresh(share)
            return True
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to update share analytics {share.id}: {e}")
            raise

    async def count_by_platform(self) -> Dict[str, int]:
        try:
            result = await self.session.execute(
                select(CollectionShare.platform, func.count()).group_by(
                    CollectionShare.platform
                )
            )
            return {platform: int(count) for platform, count in result.all()}
        except Exception as e:
            logger.error(f"❌ Failed to count shares by platform: {e}")
            raise

    async def count_where(self, *criteria) -> int:
        try:
            result = await self.session.execute(
                select(func.count()).select_from(CollectionShare).where(*criteria)
            )
            return int(result.scalar_one_or_none() or 0)
        except Exception as e:
            logger.error(f"❌ Failed to count shares: {e}")
            raise

    async def delete_expired(self, now: datetime) -> int:
        return await self.delete_where(expired_clause(now))

    async def list_with_analytics(self, limit: int = 500) -> List[CollectionShare]:
        """Most recent shares that have any analytics, with collection and user loaded"""
        try:
            result = await self.session.execute(
                select(CollectionShare)
                .options(
                    selectinload(CollectionShare.collection),
                    selectinload(CollectionShare.user),
                )
                .where(CollectionShare.analytics.is_not(None))
                .order_by(desc(CollectionShare.updated_at))
                .limit(limit)
            )
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to list shares with analytics: {e}")
            raise
