# curation/infrastructure/repositories/base.py
"""
Base Repository
Generic persistence for the activity core's tables

Writes commit immediately; any failure rolls the session back and re-raises.
A rollback expires every loaded instance, so callers that need ids after a
failed write must read them beforehand.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Generic, Iterable, List, Optional, Type, TypeVar, cast

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """
    CRUD over one mapped model

    Subclasses bind the model:
        class ShareRepository(BaseRepository[CollectionShare]):
            def __init__(self, session: AsyncSession):
                super().__init__(session, CollectionShare)

    Keyword filters match by equality; a None value matches IS NULL.
    Unknown keys are ignored.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _id_col(self) -> InstrumentedAttribute:
        return cast(InstrumentedAttribute, getattr(self.model, "id"))

    def _apply_filters(self, query, filters: Dict[str, Any]):
        for key, value in filters.items():
            column = getattr(self.model, key, None)
            if column is None:
                continue
            query = query.where(column.is_(None) if value is None else column == value)
        return query

    @asynccontextmanager
    async def _writing(self, action: str) -> AsyncIterator[None]:
        """Commit on success; roll back, log and re-raise on failure"""
        try:
            yield
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to {action} {self.model_name}: {e}")
            raise

    async def _scalars(self, query) -> List[ModelType]:
        try:
            result = await self.session.execute(query)
        except Exception as e:
            logger.error(f"❌ {self.model_name} query failed: {e}")
            raise
        return list(result.scalars().all())

    async def _scalar_count(self, query) -> int:
        try:
            result = await self.session.execute(query)
        except Exception as e:
            logger.error(f"❌ {self.model_name} count failed: {e}")
            raise
        return int(result.scalar_one_or_none() or 0)

    # ========================================================================
    # Writes
    # ========================================================================

    async def create(self, **values) -> ModelType:
        instance = cast(Any, self.model)(**values)
        async with self._writing("create"):
            self.session.add(instance)
        await self.session.refresh(instance)
        logger.info(f"✅ Created {self.model_name}: {instance.id}")
        return instance

    async def update(self, id: int, **values) -> Optional[ModelType]:
        """
        Apply `values` to row `id`

        Returns:
            The refreshed instance, or None if no such row
        """
        async with self._writing("update"):
            await self.session.execute(
                update(self.model).where(self._id_col() == id).values(**values)
            )
        instance = await self.get_by_id(id)
        if instance is not None:
            await self.session.refresh(instance)
            logger.info(f"✅ Updated {self.model_name}: {id}")
        return instance

    async def delete(self, id: int) -> bool:
        """Delete row `id`; False when it did not exist"""
        async with self._writing("delete"):
            result = await self.session.execute(
                delete(self.model).where(self._id_col() == id)
            )
        if result.rowcount:
            logger.info(f"🗑️ Deleted {self.model_name}: {id}")
            return True
        logger.warning(f"⚠️ {self.model_name} {id} not found for deletion")
        return False

    async def delete_where(self, *criteria) -> int:
        """Bulk delete by SQL criteria; returns the row count"""
        async with self._writing("bulk-delete"):
            result = await self.session.execute(delete(self.model).where(*criteria))
        removed = int(result.rowcount or 0)
        logger.info(f"🗑️ Deleted {removed} {self.model_name} rows")
        return removed

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        try:
            return await self.session.get(self.model, id)
        except Exception as e:
            logger.error(f"❌ Failed to load {self.model_name} {id}: {e}")
            raise

    async def get_many(self, ids: Iterable[Optional[int]]) -> Dict[int, ModelType]:
        """Load several rows keyed by id; missing ids are absent from the result"""
        wanted = {i for i in ids if i is not None}
        if not wanted:
            return {}
        rows = await self._scalars(select(self.model).where(self._id_col().in_(wanted)))
        return {cast(Any, row).id: row for row in rows}

    async def get_all(
        self, skip: int = 0, limit: int = 100, order_by: Optional[str] = None
    ) -> List[ModelType]:
        """Page through rows by id, or by `order_by` descending when given"""
        column = getattr(self.model, order_by, None) if order_by else None
        ordering = column.desc() if column is not None else self._id_col()
        return await self._scalars(
            select(self.model).order_by(ordering).offset(skip).limit(limit)
        )

    async def find_by(self, **filters) -> List[ModelType]:
        query = self._apply_filters(select(self.model), filters)
        return await self._scalars(query.order_by(self._id_col()))

    async def find_one_by(self, **filters) -> Optional[ModelType]:
        query = self._apply_filters(select(self.model), filters)
        rows = await self._scalars(query.order_by(self._id_col()).limit(1))
        return rows[0] if rows else None

    async def count(self, **filters) -> int:
        query = select(func.count()).select_from(self.model)
        return await self._scalar_count(self._apply_filters(query, filters))

    async def exists(self, id: int) -> bool:
        query = select(func.count()).select_from(self.model).where(self._id_col() == id)
        return await self._scalar_count(query) > 0
