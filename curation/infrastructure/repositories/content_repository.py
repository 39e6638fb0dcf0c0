# curation/infrastructure/repositories/content_repository.py
"""
Content Repositories
Collections, videos and comments as seen by the activity core
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from .base import BaseRepository
from curation.app.models import Collection, Video, Comment, collection_video

logger = logging.getLogger(__name__)


class CollectionRepository(BaseRepository[Collection]):
    """Repository for Collection operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Collection)

    async def get_by_slug(self, slug: str) -> Optional[Collection]:
        try:
            result = await self.session.execute(
                select(Collection).where(Collection.slug == slug)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to get collection by slug: {e}")
            raise

    async def add_video(self, collection_id: int, video_id: int, position: int = 0) -> None:
        """Attach a video to a collection"""
        try:
            await self.session.execute(
                collection_video.insert().values(
                    collection_id=collection_id, video_id=video_id, position=position
                )
            )
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to add video to collection: {e}")
            raise


class VideoRepository(BaseRepository[Video]):
    """Repository for Video operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Video)

    async def get_primary_collection(self, video_id: int) -> Optional[Collection]:
        """
        First collection the video was added to

        Videos have no owner of their own; the owner of this collection is
        treated as the video's owner.
        """
        try:
            result = await self.session.execute(
                select(Collection)
                .join(collection_video, collection_video.c.collection_id == Collection.id)
                .where(collection_video.c.video_id == video_id)
                .order_by(collection_video.c.added_at, Collection.id)
                .limit(1)
            )
            return result.scalars().first()
        except Exception as e:
            logger.error(f"❌ Failed to get primary collection for video: {e}")
            raise


class CommentRepository(BaseRepository[Comment]):
    """Repository for Comment operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Comment)
