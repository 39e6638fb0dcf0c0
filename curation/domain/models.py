"""
Domain value types for the activity core.

Enumerations for every closed tag set (subject kinds, visibility, actions,
notification types, share platforms), the `SubjectRef` tagged reference that
replaces stored class names, and the typed payloads persisted into the
`properties` / `data` JSON columns.

NOTE: ORM columns store the enum *values* as plain strings; since every enum
here derives from `str`, `entry.visibility == Visibility.PUBLIC` works on
loaded rows without conversion.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enumerations
# ============================================================================


class SubjectType(str, enum.Enum):
    """Closed set of entity kinds a polymorphic reference may point at"""

    COLLECTION = "collection"
    VIDEO = "video"
    COMMENT = "comment"
    USER = "user"


class Visibility(str, enum.Enum):
    """Audience scope of an activity entry"""

    PUBLIC = "public"
    PRIVATE = "private"
    FOLLOWERS = "followers"


class ActivityAction(str, enum.Enum):
    """Namespaced `domain.verb` activity tags"""

    COLLECTION_CREATED = "collection.created"
    COLLECTION_LIKED = "collection.liked"
    COLLECTION_SHARED = "collection.shared"
    VIDEO_ADDED = "video.added"
    VIDEO_LIKED = "video.liked"
    COMMENT_ADDED = "comment.added"
    USER_FOLLOWED = "user.followed"


class NotificationType(str, enum.Enum):
    """Notification type tags"""

    COLLECTION_LIKED = "collection_liked"
    VIDEO_LIKED = "video_liked"
    COMMENT_ADDED = "comment_added"
    USER_FOLLOWED = "user_followed"
    COLLECTION_SHARED = "collection_shared"


class SharePlatform(str, enum.Enum):
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    EMAIL = "email"
    LINK = "link"
    IFRAME = "iframe"


class ShareType(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    TEMPORARY = "temporary"


class FeedPeriod(str, enum.Enum):
    """Look-back filter for activity listings"""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    @property
    def delta(self) -> Optional[timedelta]:
        return {
            FeedPeriod.HOUR: timedelta(hours=1),
            FeedPeriod.DAY: timedelta(days=1),
            FeedPeriod.WEEK: timedelta(weeks=1),
            FeedPeriod.MONTH: timedelta(days=30),
            FeedPeriod.YEAR: timedelta(days=365),
        }.get(self)


# ============================================================================
# Polymorphic References
# ============================================================================


@dataclass(frozen=True)
class SubjectRef:
    """
    Tagged (kind, id) reference to a Collection, Video, Comment or User.

    Non-owning: the referenced row may have been deleted since the reference
    was stored, so resolution must tolerate absence.
    """

    type: SubjectType
    id: int

    @property
    def tag(self) -> str:
        return self.type.value

    @classmethod
    def parse(cls, tag: Optional[str], id: Optional[int]) -> Optional["SubjectRef"]:
        """
        Build a reference from a stored tag, or None for unknown tags

        Accepts the plain tag (`collection`) and namespaced class-style tags
        (`App\\Models\\Collection`) found in imported data.
        """
        if not tag or id is None:
            return None

        name = tag.replace("\\", ".").split(".")[-1].strip().lower()
        try:
            return cls(SubjectType(name), int(id))
        except (ValueError, TypeError):
            return None

    @classmethod
    def of(cls, entity: Any) -> "SubjectRef":
        """Reference an ORM entity through its `subject_type` class attribute"""
        subject_type = getattr(type(entity), "subject_type", None)
        if not isinstance(subject_type, SubjectType):
            raise TypeError(f"{type(entity).__name__} cannot be an activity subject")
        return cls(subject_type, entity.id)


@dataclass(frozen=True)
class SubjectSummary:
    """Resolved subject: id, display title and canonical URL"""

    id: int
    type: SubjectType
    title: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "url": self.url,
        }


# ============================================================================
# Typed Payloads
# ============================================================================

PAYLOAD_SCHEMA_VERSION = 1


class FoldedActor(BaseModel):
    """Actor folded into an aggregated entry"""

    model_config = ConfigDict(extra="forbid")

    id: int
    username: str


class ActivityProperties(BaseModel):
    """
    Base payload stored in `activity_logs.properties`

    `extra` is the escape hatch for context not known ahead of time.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = PAYLOAD_SCHEMA_VERSION
    subject_title: Optional[str] = None
    subject_type: Optional[str] = None
    other_users: List[FoldedActor] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class CollectionCreatedProperties(ActivityProperties):
    collection_title: Optional[str] = None


class VideoAddedProperties(ActivityProperties):
    video_title: str
    collection_title: str


class CommentAddedProperties(ActivityProperties):
    comment_content: str = ""


class CollectionSharedProperties(ActivityProperties):
    platform: SharePlatform


PROPERTIES_BY_ACTION: Dict[str, Type[ActivityProperties]] = {
    ActivityAction.COLLECTION_CREATED.value: CollectionCreatedProperties,
    ActivityAction.VIDEO_ADDED.value: VideoAddedProperties,
    ActivityAction.COMMENT_ADDED.value: CommentAddedProperties,
    ActivityAction.COLLECTION_SHARED.value: CollectionSharedProperties,
}


def properties_model_for(action: str) -> Type[ActivityProperties]:
    """Payload class for an action tag (base payload when action has none)"""
    return PROPERTIES_BY_ACTION.get(action, ActivityProperties)


class NotificationData(BaseModel):
    """
    Denormalized payload stored in `notifications.data`

    Carries everything needed to render the notification without joining to
    rows that may since have been deleted.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = PAYLOAD_SCHEMA_VERSION
    action: str
    actor_name: Optional[str] = None
    subject_title: Optional[str] = None
    subject_type: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "SubjectType",
    "Visibility",
    "ActivityAction",
    "NotificationType",
    "SharePlatform",
    "ShareType",
    "FeedPeriod",
    "SubjectRef",
    "SubjectSummary",
    "FoldedActor",
    "ActivityProperties",
    "CollectionCreatedProperties",
    "VideoAddedProperties",
    "CommentAddedProperties",
    "CollectionSharedProperties",
    "PROPERTIES_BY_ACTION",
    "properties_model_for",
    "NotificationData",
]
