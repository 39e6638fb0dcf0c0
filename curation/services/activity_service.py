"""
Activity Service
Records user actions into the activity log (with aggregation) and serves
visibility-filtered activity feeds
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import false, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import Config
from curation.app.models import ActivityLog, Collection, Comment, User, Video
from curation.domain.interfaces import Clock
from curation.domain.models import (
    ActivityAction,
    ActivityProperties,
    FeedPeriod,
    FoldedActor,
    SubjectRef,
    Visibility,
    properties_model_for,
)
from curation.infrastructure.repositories import (
    ActivityRepository,
    FollowRepository,
    UserRepository,
)
from curation.services.base_service import BaseService
from curation.services.exceptions import (
    InvalidActionError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
    WriteFailureError,
)
from curation.services.subject_resolver import SubjectResolver, subject_title
from curation.services.visibility import (
    VisibilityFilter,
    parse_visibility,
    visibility_clause,
)


@dataclass(frozen=True)
class RequestContext:
    """Requester details stored alongside an activity entry"""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def parse_action(value: Union[str, ActivityAction]) -> ActivityAction:
    """
    Validate an action tag before it is stored

    Raises:
        InvalidActionError: Tag outside the known actions
    """
    if isinstance(value, ActivityAction):
        return value
    try:
        return ActivityAction(str(value).strip().lower())
    except ValueError:
        raise InvalidActionError(value) from None


def aggregation_key_for(
    action: ActivityAction,
    subject: SubjectRef,
    visibility: Visibility,
    actor_id: Optional[int],
    explicit_key: Optional[str] = None,
) -> Optional[str]:
    """
    Merge key for an action

    Public entries fold every actor acting on the same subject. Private and
    followers-only entries carry the actor in the key, so they only absorb
    repeats by that actor and never count actions another viewer could not
    see. Actorless entries get no implicit key.

    A caller-supplied key narrows folding further; it is appended to the
    computed key and never replaces it.
    """
    if actor_id is None and not explicit_key:
        return None
    key = f"{action.value}|{subject.tag}:{subject.id}|{visibility.value}"
    if visibility is not Visibility.PUBLIC and actor_id is not None:
        key = f"{key}|actor:{actor_id}"
    if explicit_key:
        key = f"{key}|key:{explicit_key}"
    return key


class ActivityService(BaseService):
    """
    Activity aggregator and feed service

    Handles:
    - record(): find-or-fold into the open entry for a merge key
    - Typed helpers for each domain action
    - Personalized, global, per-user and targeted feeds
    - Statistics and retention cleanup
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(config=config, clock=clock)
        self.session = session
        self.activity_repo = ActivityRepository(session)
        self.user_repo = UserRepository(session)
        self.follow_repo = FollowRepository(session)
        self.resolver = SubjectResolver(session, config=self.config)
        self.visibility = VisibilityFilter(self.follow_repo)

        settings = self.config.activity
        self.window = timedelta(hours=settings.aggregation_window_hours)
        self.max_retries = settings.max_conflict_retries

    def get_service_name(self) -> str:
        return "activity"

    # ========================================================================
    # Recording
    # ========================================================================

    async def record(
        self,
        actor: Optional[User],
        action: Union[str, ActivityAction],
        subject: Any,
        target_user_id: Optional[int] = None,
        properties: Optional[Union[Dict[str, Any], ActivityProperties]] = None,
        visibility: Union[str, Visibility] = Visibility.PUBLIC,
        aggregation_key: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> ActivityLog:
        """
        Record an action, folding it into a recent compatible entry if any

        Args:
            actor: Acting user (None for system actions)
            action: `domain.verb` tag
            subject: ORM entity or SubjectRef the action is about
            target_user_id: User on the receiving end (e.g. the owner)
            properties: Action payload (dict or typed payload)
            visibility: public / private / followers
            aggregation_key: Extra merge key, appended to the computed one
                (required to fold actorless entries)
            context: Requester IP / user agent

        Returns:
            The new or folded-into entry

        Raises:
            InvalidActionError: Unknown action
            InvalidVisibilityError: Unknown visibility
            ValidationError: Malformed payload or subject
            WriteFailureError: Store rejected the write or conflicts persisted
        """
        action = parse_action(action)
        visibility = parse_visibility(visibility)
        ref = self._subject_ref(subject)
        payload = await self._build_properties(action, ref, subject, properties)

        actor_id = actor.id if actor is not None else None
        key = aggregation_key_for(action, ref, visibility, actor_id, aggregation_key)
        context = context or RequestContext()

        values = {
            "user_id": actor_id,
            "action": action.value,
            "subject_type": ref.tag,
            "subject_id": ref.id,
            "target_user_id": target_user_id,
            "properties": payload,
            "visibility": visibility.value,
            "aggregated_count": 1,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }

        try:
            if key is None:
                now = self.now()
                entry = await self.activity_repo.create(
                    **values, created_at=now, updated_at=now
                )
                self.log_info(f"✅ Recorded {action.value}", entry_id=entry.id)
                return entry

            folded = (
                FoldedActor(id=actor.id, username=actor.username)
                if actor is not None
                else None
            )
            return await self._record_aggregated(folded, key, values)
        except SQLAlchemyError as e:
            raise self.handle_error(e, f"Recording {action.value}")

    async def _record_aggregated(
        self, actor: Optional[FoldedActor], key: str, values: Dict[str, Any]
    ) -> ActivityLog:
        """Find-or-fold loop; each lost race re-reads and tries again"""
        # A lost race rolls back and expires loaded instances, so the actor
        # is carried as plain values
        for attempt in range(self.max_retries + 1):
            try:
                return await self._fold_or_open(actor, key, values)
            except ResourceConflictError as e:
                self.log_warning(f"⚠️ {e}, retrying", key=key, attempt=attempt + 1)

        self.log_error("❌ Aggregation conflicts exhausted retries", key=key)
        raise WriteFailureError(
            f"Could not record activity after {self.max_retries + 1} attempts",
            details={"aggregation_key": key},
        )

    async def _fold_or_open(
        self, actor: Optional[FoldedActor], key: str, values: Dict[str, Any]
    ) -> ActivityLog:
        now = self.now()
        open_entry = await self.activity_repo.get_open_entry(key)

        if open_entry is not None and self._within_window(open_entry, now):
            if actor is not None and actor.id in open_entry.folded_actor_ids:
                self.log_debug("Repeat action already counted", entry_id=open_entry.id)
                return open_entry

            properties = self._with_folded_actor(open_entry, actor)
            if await self.activity_repo.try_fold(open_entry, properties, now):
                return open_entry
        else:
            stale_id = open_entry.id if open_entry is not None else None
            entry = await self.activity_repo.try_open(
                {**values, "created_at": now, "updated_at": now},
                key,
                stale_entry_id=stale_id,
            )
            if entry is not None:
                return entry

        raise ResourceConflictError("Aggregation conflict", details={"aggregation_key": key})

    def _within_window(self, entry: ActivityLog, now: datetime) -> bool:
        return now - entry.updated_at <= self.window

    @staticmethod
    def _with_folded_actor(
        entry: ActivityLog, actor: Optional[FoldedActor]
    ) -> Dict[str, Any]:
        properties = dict(entry.properties or {})
        other_users = list(properties.get("other_users", []))
        if actor is not None:
            other_users.append(actor.model_dump())
        properties["other_users"] = other_users
        return properties

    def _subject_ref(self, subject: Any) -> SubjectRef:
        if isinstance(subject, SubjectRef):
            return subject
        try:
            return SubjectRef.of(subject)
        except TypeError as e:
            raise ValidationError(str(e), field="subject") from None

    async def _build_properties(
        self,
        action: ActivityAction,
        ref: SubjectRef,
        subject: Any,
        properties: Optional[Union[Dict[str, Any], ActivityProperties]],
    ) -> Dict[str, Any]:
        """Validate the payload against the action's typed schema"""
        if isinstance(properties, ActivityProperties):
            data = properties.model_dump(exclude_unset=True)
        else:
            data = dict(properties or {})
        # Maintained by the aggregator only
        data.pop("other_users", None)

        if not data.get("subject_title"):
            if isinstance(subject, SubjectRef):
                summary = await self.resolver.resolve(subject)
                data["subject_title"] = summary.title if summary else None
            else:
                data["subject_title"] = subject_title(subject)
        data.setdefault("subject_type", ref.tag)

        model = properties_model_for(action.value)
        try:
            return model.model_validate(data).model_dump(mode="json")
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid properties for {action.value}",
                field="properties",
                errors=[err["msg"] for err in e.errors()],
            ) from None

    # ========================================================================
    # Domain Helpers
    # ========================================================================

    async def collection_created(self, user: User, collection: Collection) -> ActivityLog:
        return await self.record(
            user,
            ActivityAction.COLLECTION_CREATED,
            collection,
            properties={"collection_title": collection.title},
        )

    async def video_added(
        self, user: User, video: Video, collection: Collection
    ) -> ActivityLog:
        return await self.record(
            user,
            ActivityAction.VIDEO_ADDED,
            video,
            target_user_id=collection.user_id,
            properties={"video_title": video.title, "collection_title": collection.title},
        )

    async def collection_liked(self, user: User, collection: Collection) -> ActivityLog:
        return await self.record(
            user,
            ActivityAction.COLLECTION_LIKED,
            collection,
            target_user_id=collection.user_id,
        )

    async def video_liked(self, user: User, video: Video) -> ActivityLog:
        owner_id = await self.resolver.owner_id(SubjectRef.of(video))
        return await self.record(
            user, ActivityAction.VIDEO_LIKED, video, target_user_id=owner_id
        )

    async def comment_added(self, user: User, comment: Comment, subject: Any) -> ActivityLog:
        """Comment on a collection or video; the subject's owner is the target"""
        subject_ref = SubjectRef.of(subject)
        owner_id = await self.resolver.owner_id(subject_ref)
        return await self.record(
            user,
            ActivityAction.COMMENT_ADDED,
            comment,
            target_user_id=owner_id,
            properties={
                "comment_content": comment.excerpt(
                    self.config.notifications.excerpt_length
                ),
                "subject_title": subject_title(subject),
            },
        )

    async def user_followed(self, follower: User, followed: User) -> ActivityLog:
        return await self.record(
            follower, ActivityAction.USER_FOLLOWED, followed, target_user_id=followed.id
        )

    async def collection_shared(
        self, user: User, collection: Collection, platform: str
    ) -> ActivityLog:
        return await self.record(
            user,
            ActivityAction.COLLECTION_SHARED,
            collection,
            target_user_id=collection.user_id,
            properties={"platform": platform},
        )

    # ========================================================================
    # Feeds
    # ========================================================================

    def _page(self, limit: Optional[int]) -> int:
        settings = self.config.activity
        if not limit or limit < 1:
            return settings.default_feed_limit
        return min(limit, settings.max_feed_limit)

    async def personalized_feed(
        self, viewer_id: int, skip: int = 0, limit: Optional[int] = None
    ) -> List[ActivityLog]:
        """
        Entries from followed users, public entries and entries targeting the
        viewer, restricted to what the viewer may see, excluding their own
        """
        followed = await self.follow_repo.following_ids(viewer_id)
        visible = visibility_clause(viewer_id, followed)
        relevant = or_(
            ActivityLog.user_id.in_(followed) if followed else false(),
            ActivityLog.visibility == Visibility.PUBLIC.value,
            ActivityLog.target_user_id == viewer_id,
        )
        not_own = or_(ActivityLog.user_id.is_(None), ActivityLog.user_id != viewer_id)
        return await self.activity_repo.list_entries(
            visible, relevant, not_own, skip=skip, limit=self._page(limit)
        )

    async def global_feed(self, skip: int = 0, limit: Optional[int] = None) -> List[ActivityLog]:
        """Public entries only"""
        return await self.activity_repo.list_entries(
            ActivityLog.visibility == Visibility.PUBLIC.value,
            skip=skip,
            limit=self._page(limit),
        )

    async def user_activities(
        self,
        user_id: int,
        viewer_id: Optional[int] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ActivityLog]:
        """A user's own entries as seen by viewer (anonymous: public only)"""
        visible = await self.visibility.clause_for(viewer_id)
        return await self.activity_repo.list_entries(
            ActivityLog.user_id == user_id, visible, skip=skip, limit=self._page(limit)
        )

    async def public_user_activities(
        self, username: str, skip: int = 0, limit: Optional[int] = None
    ) -> List[ActivityLog]:
        """
        Public entries of a user looked up by username

        Raises:
            ResourceNotFoundError: Unknown username
        """
        user = await self.user_repo.get_by_username(username)
        if user is None:
            raise ResourceNotFoundError("User", username)
        return await self.user_activities(user.id, None, skip=skip, limit=limit)

    async def targeted_activities(
        self, user_id: int, skip: int = 0, limit: Optional[int] = None
    ) -> List[ActivityLog]:
        """Entries where the user is the target (always visible to them)"""
        return await self.activity_repo.list_entries(
            ActivityLog.target_user_id == user_id, skip=skip, limit=self._page(limit)
        )

    async def filtered_activities(
        self,
        viewer_id: Optional[int] = None,
        action: Optional[str] = None,
        subject_type: Optional[str] = None,
        actor_id: Optional[int] = None,
        period: Union[str, FeedPeriod] = FeedPeriod.ALL,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ActivityLog]:
        """
        Visible entries narrowed by action, subject kind, actor and period

        Raises:
            InvalidActionError: Unknown action / subject type / period tag
        """
        criteria = [await self.visibility.clause_for(viewer_id)]

        if action:
            criteria.append(ActivityLog.action == parse_action(action).value)
        if subject_type:
            ref = SubjectRef.parse(subject_type, 0)
            if ref is None:
                raise InvalidActionError(subject_type, field="subject_type")
            criteria.append(ActivityLog.subject_type == ref.tag)
        if actor_id is not None:
            criteria.append(ActivityLog.user_id == actor_id)

        try:
            period = FeedPeriod(period)
        except ValueError:
            raise InvalidActionError(period, field="period") from None
        if period.delta is not None:
            criteria.append(ActivityLog.created_at >= self.now() - period.delta)

        return await self.activity_repo.list_entries(
            *criteria, skip=skip, limit=self._page(limit)
        )

    async def get_entry(self, entry_id: int, viewer_id: Optional[int] = None) -> ActivityLog:
        """
        Single entry, if visible to the viewer

        Raises:
            ResourceNotFoundError: Missing or invisible to the viewer
        """
        entry = await self.activity_repo.get_with_relations(entry_id)
        if entry is None or not await self.visibility.visible_to(entry, viewer_id):
            raise ResourceNotFoundError("ActivityLog", entry_id)
        return entry

    async def require_user(self, user_id: int) -> User:
        """
        Load a user by id

        Raises:
            ResourceNotFoundError: No such user
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError("User", user_id)
        return user

    # ========================================================================
    # Statistics & Maintenance
    # ========================================================================

    async def user_activity_stats(self, user_id: int) -> Dict[str, Any]:
        by_action = await self.activity_repo.count_by_action(user_id)
        last = await self.activity_repo.last_activity_at(user_id)
        return {
            "total_activities": sum(by_action.values()),
            "activities_by_type": by_action,
            "last_activity": last.isoformat() if last else None,
        }

    async def cleanup_old_activities(self, days: Optional[int] = None) -> int:
        """Delete entries older than `days` (default: configured retention)"""
        days = days if days is not None else self.config.activity.retention_days
        cutoff = self.now() - timedelta(days=days)
        try:
            deleted = await self.activity_repo.delete_older_than(cutoff)
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Activity cleanup")
        self.log_info(f"🗑️ Deleted {deleted} activity entries older than {days} days")
        return deleted


__all__ = [
    "ActivityService",
    "RequestContext",
    "parse_action",
    "aggregation_key_for",
]
