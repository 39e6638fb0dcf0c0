"""
Event Service
Runs the notification dispatcher and the activity aggregator for one domain
event
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import Config
from curation.app.models import ActivityLog, Collection, Comment, Notification, User, Video
from curation.domain.interfaces import Clock
from curation.services.activity_service import ActivityService
from curation.services.base_service import BaseService
from curation.services.exceptions import ServiceError
from curation.services.notification_service import NotificationService


@dataclass
class EventOutcome:
    """What an event produced; notification is None when nobody was notified"""

    activity: ActivityLog
    notification: Optional[Notification] = None


class EventService(BaseService):
    """
    Domain event handler

    Each handler notifies the subject's owner (skipped when the owner is the
    actor) and then records the activity. Both writes commit separately;
    a failure is logged and re-raised to the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
        activities: Optional[ActivityService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        super().__init__(config=config, clock=clock)
        self.activities = activities or ActivityService(session, self.config, self.clock)
        self.notifications = notifications or NotificationService(
            session, self.config, self.clock
        )

    def get_service_name(self) -> str:
        return "events"

    async def _handle(
        self,
        event: str,
        notify: Optional[Callable[[], Awaitable[Optional[Notification]]]],
        record: Callable[[], Awaitable[ActivityLog]],
    ) -> EventOutcome:
        try:
            notification = await notify() if notify is not None else None
            activity = await record()
        except ServiceError as e:
            self.log_error(f"❌ Failed to handle {event}", error=e, code=e.code)
            raise
        self.log_debug(
            f"Handled {event}",
            activity_id=activity.id,
            notified=notification is not None,
        )
        return EventOutcome(activity=activity, notification=notification)

    # ========================================================================
    # Events
    # ========================================================================

    async def collection_liked(self, user: User, collection: Collection) -> EventOutcome:
        return await self._handle(
            "collection liked",
            lambda: self.notifications.collection_liked(user, collection),
            lambda: self.activities.collection_liked(user, collection),
        )

    async def video_liked(self, user: User, video: Video) -> EventOutcome:
        return await self._handle(
            "video liked",
            lambda: self.notifications.video_liked(user, video),
            lambda: self.activities.video_liked(user, video),
        )

    async def comment_added(self, user: User, comment: Comment, subject: Any) -> EventOutcome:
        return await self._handle(
            "comment added",
            lambda: self.notifications.comment_added(user, comment, subject),
            lambda: self.activities.comment_added(user, comment, subject),
        )

    async def user_followed(self, follower: User, followed: User) -> EventOutcome:
        return await self._handle(
            "user followed",
            lambda: self.notifications.user_followed(follower, followed),
            lambda: self.activities.user_followed(follower, followed),
        )

    async def collection_created(self, user: User, collection: Collection) -> EventOutcome:
        return await self._handle(
            "collection created",
            None,
            lambda: self.activities.collection_created(user, collection),
        )

    async def video_added(
        self, user: User, video: Video, collection: Collection
    ) -> EventOutcome:
        return await self._handle(
            "video added",
            None,
            lambda: self.activities.video_added(user, video, collection),
        )

    async def collection_shared(
        self, user: User, collection: Collection, platform: str
    ) -> EventOutcome:
        return await self._handle(
            "collection shared",
            lambda: self.notifications.collection_shared(user, collection),
            lambda: self.activities.collection_shared(user, collection, platform),
        )
