"""
Subject Resolver
Maps a (subject type, id) reference to the entity, its display title and its
canonical URL
"""

from typing import Any, Callable, Dict, Iterable, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import Config
from curation.app.models import Collection, Comment, User, Video
from curation.domain.models import SubjectRef, SubjectSummary, SubjectType
from curation.infrastructure.repositories import VideoRepository
from curation.services.base_service import BaseService


# ============================================================================
# Dispatch Tables
# ============================================================================

MODEL_BY_TYPE: Dict[SubjectType, Type[Any]] = {
    SubjectType.COLLECTION: Collection,
    SubjectType.VIDEO: Video,
    SubjectType.COMMENT: Comment,
    SubjectType.USER: User,
}

PATH_BY_TYPE: Dict[SubjectType, Callable[[Any], str]] = {
    SubjectType.COLLECTION: lambda c: f"/collections/{c.slug}",
    SubjectType.VIDEO: lambda v: f"/videos/{v.id}",
    SubjectType.COMMENT: lambda c: f"/comments/{c.id}",
    SubjectType.USER: lambda u: f"/users/{u.username}",
}

TITLE_BY_TYPE: Dict[SubjectType, Callable[[Any], str]] = {
    SubjectType.COLLECTION: lambda c: c.title,
    SubjectType.VIDEO: lambda v: v.title,
    SubjectType.COMMENT: lambda c: c.excerpt(50) or "Comment",
    SubjectType.USER: lambda u: u.username,
}


def subject_title(entity: Any) -> str:
    """Display title of a subject entity"""
    return TITLE_BY_TYPE[SubjectRef.of(entity).type](entity)


def subject_path(ref: SubjectRef, entity: Any) -> str:
    return PATH_BY_TYPE[ref.type](entity)


class SubjectResolver(BaseService):
    """
    Resolves polymorphic subject references

    Resolution never raises for unknown tags, deleted rows or read errors:
    those degrade to None so one dangling reference cannot fail a whole
    rendering pass.
    """

    def __init__(self, session: AsyncSession, config: Optional[Config] = None):
        super().__init__(config=config)
        self.session = session
        self.base_url = self.config.api.public_base_url

    def get_service_name(self) -> str:
        return "subject_resolver"

    # ========================================================================
    # Loading
    # ========================================================================

    async def load(self, ref: Optional[SubjectRef]) -> Optional[Any]:
        """
        Load the referenced entity

        Args:
            ref: Subject reference (None allowed)

        Returns:
            ORM entity or None if absent / unreadable
        """
        if ref is None:
            return None
        try:
            return await self.session.get(MODEL_BY_TYPE[ref.type], ref.id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.log_warning(f"⚠️ Could not load subject {ref.tag}:{ref.id}", error=e)
            return None

    async def load_many(self, refs: Iterable[Optional[SubjectRef]]) -> Dict[SubjectRef, Any]:
        """
        Load many references with one query per subject type

        Returns:
            Mapping of reference to entity (missing rows are absent)
        """
        by_type: Dict[SubjectType, set] = {}
        for ref in refs:
            if ref is not None:
                by_type.setdefault(ref.type, set()).add(ref.id)

        loaded: Dict[SubjectRef, Any] = {}
        for subject_type, ids in by_type.items():
            model = MODEL_BY_TYPE[subject_type]
            try:
                result = await self.session.execute(
                    select(model).where(model.id.in_(ids))
                )
                for entity in result.scalars().all():
                    loaded[SubjectRef(subject_type, entity.id)] = entity
            except SQLAlchemyError as e:
                await self.session.rollback()
                self.log_warning(
                    f"⚠️ Could not load {subject_type.value} subjects", error=e
                )
        return loaded

    # ========================================================================
    # Summaries
    # ========================================================================

    def summarize(self, ref: SubjectRef, entity: Any) -> SubjectSummary:
        """Pure mapping from a loaded entity to its summary"""
        return SubjectSummary(
            id=ref.id,
            type=ref.type,
            title=TITLE_BY_TYPE[ref.type](entity),
            url=f"{self.base_url}{subject_path(ref, entity)}",
        )

    async def resolve(self, ref: Optional[SubjectRef]) -> Optional[SubjectSummary]:
        """
        Resolve a reference to (id, title, url)

        Args:
            ref: Subject reference

        Returns:
            SubjectSummary or None if the tag is unknown or the row is gone
        """
        entity = await self.load(ref)
        if entity is None:
            return None
        return self.summarize(ref, entity)

    async def resolve_many(
        self, refs: Iterable[Optional[SubjectRef]]
    ) -> Dict[SubjectRef, SubjectSummary]:
        entities = await self.load_many(refs)
        return {ref: self.summarize(ref, entity) for ref, entity in entities.items()}

    # ========================================================================
    # Ownership
    # ========================================================================

    async def owner_id(self, ref: Optional[SubjectRef]) -> Optional[int]:
        """
        User who owns the subject (notification recipient)

        Videos are owned through the first collection they were added to.
        """
        entity = await self.load(ref)
        if entity is None:
            return None

        if ref.type is SubjectType.USER:
            return entity.id
        if ref.type is SubjectType.VIDEO:
            try:
                collection = await VideoRepository(self.session).get_primary_collection(
                    entity.id
                )
            except SQLAlchemyError as e:
                await self.session.rollback()
                self.log_warning(f"⚠️ Could not find owner of video {entity.id}", error=e)
                return None
            return collection.user_id if collection else None
        return entity.user_id
