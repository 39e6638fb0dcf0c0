"""
Notification Service
Creates notifications for qualifying actions and manages read state
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import Config
from curation.app.models import Collection, Comment, Notification, User, Video
from curation.domain.interfaces import Clock
from curation.domain.models import NotificationData, NotificationType, SubjectRef
from curation.infrastructure.repositories import NotificationRepository, UserRepository
from curation.services.base_service import BaseService
from curation.services.exceptions import (
    InvalidActionError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ServiceError,
    ValidationError,
)
from curation.services.subject_resolver import SubjectResolver, subject_title


# Human readable action phrase stored with each notification
ACTION_PHRASES: Dict[NotificationType, str] = {
    NotificationType.COLLECTION_LIKED: "liked your collection",
    NotificationType.VIDEO_LIKED: "liked your video",
    NotificationType.COMMENT_ADDED: "commented on your {subject_type}",
    NotificationType.USER_FOLLOWED: "started following you",
    NotificationType.COLLECTION_SHARED: "shared your collection",
}


def parse_notification_type(value: Union[str, NotificationType]) -> NotificationType:
    """
    Validate a notification type tag

    Raises:
        InvalidActionError: Unknown type
    """
    if isinstance(value, NotificationType):
        return value
    try:
        return NotificationType(str(value).strip().lower())
    except ValueError:
        raise InvalidActionError(value, field="type") from None


class NotificationService(BaseService):
    """
    Notification dispatcher

    Handles:
    - notify(): one notification, skipped when recipient == actor
    - notify_many(): fan-out to several recipients
    - Read state: mark_read / mark_unread / mark_all_read
    - Listing, unread counts and retention cleanup
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(config=config, clock=clock)
        self.session = session
        self.notification_repo = NotificationRepository(session)
        self.user_repo = UserRepository(session)
        self.resolver = SubjectResolver(session, config=self.config)

    def get_service_name(self) -> str:
        return "notification"

    # ========================================================================
    # Dispatch
    # ========================================================================

    async def notify(
        self,
        recipient: Union[User, int],
        actor: Optional[User],
        type: Union[str, NotificationType],
        subject: Any,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """
        Create a notification for recipient about actor's action on subject

        Args:
            recipient: Recipient user (or id)
            actor: User who triggered it (None for system)
            type: Notification type tag
            subject: ORM entity or SubjectRef
            data: Extra payload; `action` overrides the default phrase

        Returns:
            Created notification, or None when recipient is the actor

        Raises:
            InvalidActionError: Unknown type
            ResourceNotFoundError: Recipient does not exist
            WriteFailureError: Store rejected the write
        """
        notification_type = parse_notification_type(type)
        recipient_id = recipient.id if isinstance(recipient, User) else int(recipient)

        if actor is not None and actor.id == recipient_id:
            self.log_debug(
                f"Skipped self notification {notification_type.value}", user_id=recipient_id
            )
            return None

        if not isinstance(recipient, User) and not await self.user_repo.exists(recipient_id):
            raise ResourceNotFoundError("User", recipient_id)

        ref, title = await self._describe(subject)
        payload = self._build_data(notification_type, actor, ref, title, data)
        now = self.now()

        try:
            notification = await self.notification_repo.create(
                user_id=recipient_id,
                notifiable_type="user",
                notifiable_id=recipient_id,
                type=notification_type.value,
                actor_id=actor.id if actor is not None else None,
                subject_type=ref.tag,
                subject_id=ref.id,
                data=payload,
                read_at=None,
                created_at=now,
                updated_at=now,
            )
        except SQLAlchemyError as e:
            raise self.handle_error(e, f"Creating {notification_type.value} notification")

        self.log_info(
            f"🔔 Notified user {recipient_id}: {notification_type.value}",
            notification_id=notification.id,
        )
        return notification

    async def notify_many(
        self,
        user_ids: Iterable[int],
        actor: Optional[User],
        type: Union[str, NotificationType],
        subject: Any,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        """
        Fan a notification out to several recipients

        The actor and unknown users are skipped; a failure for one recipient
        is logged and does not stop the others.
        """
        parse_notification_type(type)

        created: List[Notification] = []
        seen = set()
        for user_id in user_ids:
            if user_id in seen or (actor is not None and user_id == actor.id):
                continue
            seen.add(user_id)
            try:
                notification = await self.notify(user_id, actor, type, subject, dict(data or {}))
            except ServiceError as e:
                self.log_warning(
                    "⚠️ Failed to notify user", user_id=user_id, type=str(type), error=e
                )
                continue
            if notification is not None:
                created.append(notification)
        return created

    async def _describe(self, subject: Any):
        if isinstance(subject, SubjectRef):
            summary = await self.resolver.resolve(subject)
            return subject, summary.title if summary else None
        try:
            return SubjectRef.of(subject), subject_title(subject)
        except TypeError as e:
            raise ValidationError(str(e), field="subject") from None

    @staticmethod
    def _build_data(
        notification_type: NotificationType,
        actor: Optional[User],
        ref: SubjectRef,
        title: Optional[str],
        data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Denormalize actor and subject details into the payload"""
        extra = dict(data or {})
        action = extra.pop("action", None) or ACTION_PHRASES[notification_type].format(
            subject_type=ref.tag
        )
        return NotificationData(
            action=action,
            actor_name=actor.display_name if actor is not None else None,
            subject_title=title,
            subject_type=ref.tag,
            extra=extra,
        ).model_dump(mode="json")

    # ========================================================================
    # Typed Helpers
    # ========================================================================

    async def collection_liked(
        self, actor: User, collection: Collection
    ) -> Optional[Notification]:
        return await self.notify(
            collection.user_id, actor, NotificationType.COLLECTION_LIKED, collection
        )

    async def video_liked(self, actor: User, video: Video) -> Optional[Notification]:
        """Notify the video's owner (owner of its first collection), if any"""
        owner_id = await self.resolver.owner_id(SubjectRef.of(video))
        if owner_id is None:
            self.log_debug("Video has no owner to notify", video_id=video.id)
            return None
        return await self.notify(owner_id, actor, NotificationType.VIDEO_LIKED, video)

    async def comment_added(
        self, actor: User, comment: Comment, subject: Any
    ) -> Optional[Notification]:
        """Notify the owner of the commented collection / video"""
        subject_ref = SubjectRef.of(subject)
        owner_id = await self.resolver.owner_id(subject_ref)
        if owner_id is None:
            return None
        return await self.notify(
            owner_id,
            actor,
            NotificationType.COMMENT_ADDED,
            comment,
            {
                "action": ACTION_PHRASES[NotificationType.COMMENT_ADDED].format(
                    subject_type=subject_ref.tag
                ),
                "comment_content": comment.excerpt(
                    self.config.notifications.excerpt_length
                ),
            },
        )

    async def user_followed(self, follower: User, followed: User) -> Optional[Notification]:
        return await self.notify(followed, follower, NotificationType.USER_FOLLOWED, follower)

    async def collection_shared(
        self, actor: User, collection: Collection
    ) -> Optional[Notification]:
        return await self.notify(
            collection.user_id, actor, NotificationType.COLLECTION_SHARED, collection
        )

    # ========================================================================
    # Read State
    # ========================================================================

    async def mark_read(self, notification: Notification) -> Notification:
        """
        Set read_at to now; no-op if already read

        Returns:
            The notification with its current read_at
        """
        now = self.now()
        try:
            changed = await self.notification_repo.set_read_at(notification, now, now)
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Marking notification read")
        if changed:
            self.log_info(f"✅ Notification {notification.id} marked read")
        return notification

    async def mark_unread(self, notification: Notification) -> Notification:
        """Reset read_at to NULL; no-op if already unread"""
        try:
            changed = await self.notification_repo.set_read_at(
                notification, None, self.now()
            )
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Marking notification unread")
        if changed:
            self.log_info(f"✅ Notification {notification.id} marked unread")
        return notification

    async def get_for_user(self, notification_id: int, user_id: int) -> Notification:
        """
        Load a notification owned by user_id

        Raises:
            ResourceNotFoundError: No such notification
            PermissionDeniedError: Notification belongs to someone else
        """
        notification = await self.notification_repo.get_by_id(notification_id)
        if notification is None:
            raise ResourceNotFoundError("Notification", notification_id)
        if notification.user_id != user_id:
            raise PermissionDeniedError(
                "Notification belongs to another user",
                details={"notification_id": notification_id},
            )
        return notification

    async def mark_read_by_id(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.get_for_user(notification_id, user_id)
        return await self.mark_read(notification)

    async def mark_unread_by_id(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.get_for_user(notification_id, user_id)
        return await self.mark_unread(notification)

    async def delete_for_user(self, notification_id: int, user_id: int) -> bool:
        notification = await self.get_for_user(notification_id, user_id)
        try:
            return await self.notification_repo.delete(notification.id)
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Deleting notification")

    async def mark_all_read(self, user_id: int) -> int:
        try:
            count = await self.notification_repo.mark_all_read(user_id, self.now())
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Marking all notifications read")
        self.log_info(f"✅ Marked {count} notifications read", user_id=user_id)
        return count

    # ========================================================================
    # Queries & Maintenance
    # ========================================================================

    async def list_for_user(
        self,
        user_id: int,
        type: Optional[str] = None,
        read: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        if type:
            type = parse_notification_type(type).value
        return await self.notification_repo.list_for_user(
            user_id, type=type, read=read, skip=skip, limit=limit
        )

    async def unread_count(self, user_id: int) -> int:
        return await self.notification_repo.unread_count(user_id)

    async def delete_old_notifications(self, days: Optional[int] = None) -> int:
        """Delete notifications older than `days` (default: configured retention)"""
        days = days if days is not None else self.config.notifications.retention_days
        cutoff = self.now() - timedelta(days=days)
        try:
            deleted = await self.notification_repo.delete_older_than(cutoff)
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Notification cleanup")
        self.log_info(f"🗑️ Deleted {deleted} notifications older than {days} days")
        return deleted
