# curation/infrastructure/repositories/activity_repository.py
"""
Activity Repository
Activity log persistence, including the compare-and-swap writes used for
aggregation
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
from sqlalchemy import select, update, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import logging

from .base import BaseRepository
from curation.app.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityRepository(BaseRepository[ActivityLog]):
    """
    Repository for ActivityLog operations

    Aggregation writes never read-modify-write in Python alone: every change
    to an open entry is an UPDATE guarded by the values the caller last saw,
    and opening a new entry claims the UNIQUE `aggregation_slot`. A False /
    None return means another writer got there first and the caller should
    re-read and retry.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ActivityLog)

    # ========================================================================
    # Aggregation Writes
    # ========================================================================

    async def get_open_entry(self, aggregation_key: str) -> Optional[ActivityLog]:
        """
        Get the entry currently holding the slot for a key

        Args:
            aggregation_key: Merge key

        Returns:
            Open entry (freshly loaded, never a stale identity-map copy) or None
        """
        try:
            result = await self.session.execute(
                select(ActivityLog)
                .where(ActivityLog.aggregation_slot == aggregation_key)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to load open activity entry: {e}")
            raise

    async def try_fold(
        self,
        entry: ActivityLog,
        properties: Dict[str, Any],
        now: datetime,
    ) -> bool:
        """
        Fold one more actor into an open entry

        Args:
            entry: Entry as last read by the caller
            properties: New properties (with the extra actor appended)
            now: New updated_at

        Returns:
            True if committed, False if the entry changed underneath us
        """
        try:
            result = await self.session.execute(
                update(ActivityLog)
                .where(ActivityLog.id == entry.id)
                .where(ActivityLog.aggregated_count == entry.aggregated_count)
                .where(ActivityLog.aggregation_slot == entry.aggregation_key)
                .values(
                    aggregated_count=ActivityLog.aggregated_count + 1,
                    properties=properties,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.session.rollback()
                logger.warning(f"⚠️ Lost fold race on activity {entry.id}")
                return False

            await self.session.commit()
            await self.session.refresh(entry)
            logger.info(
                f"✅ Folded into activity {entry.id} (count={entry.aggregated_count})"
            )
            return True
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to fold activity {entry.id}: {e}")
            raise

    async def try_open(
        self,
        values: Dict[str, Any],
        aggregation_key: str,
        stale_entry_id: Optional[int] = None,
    ) -> Optional[ActivityLog]:
        """
        Insert a new entry that holds the slot for `aggregation_key`

        Releasing a stale entry's slot and inserting the new row happen in
        one transaction.

        Args:
            values: Column values for the new entry
            aggregation_key: Merge key to claim
            stale_entry_id: Entry currently holding the slot, if any

        Returns:
            New entry, or None if another writer claimed the slot first
        """
        try:
            if stale_entry_id is not None:
                released = await self.session.execute(
                    update(ActivityLog)
                    .where(ActivityLog.id == stale_entry_id)
                    .where(ActivityLog.aggregation_slot == aggregation_key)
                    .values(aggregation_slot=None)
                    .execution_options(synchronize_session=False)
                )
                if released.rowcount != 1:
                    await self.session.rollback()
                    logger.warning(
                        f"⚠️ Slot for '{aggregation_key}' already released"
                    )
                    return None

            entry = ActivityLog(
                **values,
                aggregation_key=aggregation_key,
                aggregation_slot=aggregation_key,
            )
            self.session.add(entry)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(entry)
            logger.info(f"✅ Created ActivityLog: {entry.id} ({entry.action})")
            return entry
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"⚠️ Slot for '{aggregation_key}' claimed concurrently: {e}")
            return None
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to open activity entry: {e}")
            raise

    # ========================================================================
    # Feed Queries
    # ========================================================================

    async def get_with_relations(self, entry_id: int) -> Optional[ActivityLog]:
        try:
            result = await self.session.execute(
                select(ActivityLog)
                .options(
                    selectinload(ActivityLog.user),
                    selectinload(ActivityLog.target_user),
                )
                .where(ActivityLog.id == entry_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to get activity with relations: {e}")
            raise

    async def list_entries(
        self,
        *criteria,
        skip: int = 0,
        limit: int = 15,
        with_relations: bool = True,
    ) -> List[ActivityLog]:
        """
        List entries matching SQL criteria, newest first

        Args:
            *criteria: SQLAlchemy WHERE clauses (visibility, actor, action...)
            skip: Pagination offset
            limit: Max results
            with_relations: Eager-load actor and target user

        Returns:
            List of entries
        """
        try:
            query = (
                select(ActivityLog)
                .where(*criteria)
                .order_by(desc(ActivityLog.created_at), desc(ActivityLog.id))
                .offset(skip)
                .limit(limit)
            )
            if with_relations:
                query = query.options(
                    selectinload(ActivityLog.user),
                    selectinload(ActivityLog.target_user),
                )

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except Exception as e:
            logger.error(f"❌ Failed to list activity entries: {e}")
            raise

    async def count_entries(self, *criteria) -> int:
        try:
            result = await self.session.execute(
                select(func.count()).select_from(ActivityLog).where(*criteria)
            )
            return int(result.scalar_one_or_none() or 0)
        except Exception as e:
            logger.error(f"❌ Failed to count activity entries: {e}")
            raise

    # ========================================================================
    # Statistics & Maintenance
    # ========================================================================

    async def count_by_action(self, user_id: int) -> Dict[str, int]:
        """
        Entry counts per action for one actor

        Returns:
            Mapping of action tag to count
        """
        try:
            result = await self.session.execute(
                select(ActivityLog.action, func.count())
                .where(ActivityLog.user_id == user_id)
                .group_by(ActivityLog.action)
            )
            return {action: int(count) for action, count in result.all()}
        except Exception as e:
            logger.error(f"❌ Failed to count activity by action: {e}")
            raise

    async def last_activity_at(self, user_id: int) -> Optional[datetime]:
        try:
            result = await self.session.execute(
                select(func.max(ActivityLog.created_at)).where(
                    ActivityLog.user_id == user_id
                )
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"❌ Failed to get last activity time: {e}")
            raise

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete entries created before cutoff"""
        return await self.delete_where(ActivityLog.created_at < cutoff)
