# curation/infrastructure/repositories/user_repository.py
"""
User Repository
Users, profiles and the follower graph
"""

from typing import List, Optional, Set
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging

from .base import BaseRepository
from curation.app.models import User, Follow

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    async def get_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username

        Args:
            username: Unique username

        Returns:
            User or None
        """
        try:
            result = await self.session.execute(
                select(User).where(User.username == username)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to get user by username: {e}")
            raise

    async def get_with_profile(self, user_id: int) -> Optional[User]:
        try:
            result = await self.session.execute(
                select(User).options(selectinload(User.profile)).where(User.id == user_id)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to get user with profile: {e}")
            raise


class FollowRepository(BaseRepository[Follow]):
    """
    Follower graph queries

    Satisfies the `FollowGraph` protocol consumed by the visibility filter.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Follow)

    async def is_following(self, follower_id: int, followed_id: int) -> bool:
        """
        Check whether follower_id follows followed_id

        Args:
            follower_id: Viewer
            followed_id: Actor

        Returns:
            True if the edge exists
        """
        try:
            result = await self.session.execute(
                select(Follow.id)
                .where(Follow.follower_id == follower_id)
                .where(Follow.following_id == followed_id)
                .limit(1)
            )
            return result.first() is not None
        except Exception as e:
            logger.error(f"❌ Failed to check follow relation: {e}")
            raise

    async def following_ids(self, follower_id: int) -> Set[int]:
        """Ids of every user follower_id follows"""
        try:
            result = await self.session.execute(
                select(Follow.following_id).where(Follow.follower_id == follower_id)
            )
            return set(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to load following ids: {e}")
            raise

    async def follower_ids(self, followed_id: int) -> List[int]:
        """Ids of every follower of followed_id"""
        try:
            result = await self.session.execute(
                select(Follow.follower_id)
                .where(Follow.following_id == followed_id)
                .order_by(Follow.follower_id)
            )
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to load follower ids: {e}")
            raise

    async def follow(self, follower_id: int, followed_id: int) -> Follow:
        """
        Create the follow edge (returns the existing edge if already present)
        """
        try:
            edge = Follow(follower_id=follower_id, following_id=followed_id)
            self.session.add(edge)
            await self.session.commit()
            await self.session.refresh(edge)
            logger.info(f"✅ User {follower_id} now follows {followed_id}")
            return edge
        except IntegrityError:
            await self.session.rollback()
            existing = await self.find_one_by(
                follower_id=follower_id, following_id=followed_id
            )
            if existing is None:
                raise
            return existing

    async def unfollow(self, follower_id: int, followed_id: int) -> bool:
        try:
            result = await self.session.execute(
                delete(Follow)
                .where(Follow.follower_id == follower_id)
                .where(Follow.following_id == followed_id)
            )
            await self.session.commit()
            return result.rowcount > 0
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to unfollow: {e}")
            raise
