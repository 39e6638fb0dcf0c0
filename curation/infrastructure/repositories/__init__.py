"""
Repository Layer
Data access patterns for all entities
"""

from .base import BaseRepository
from .user_repository import UserRepository, FollowRepository
from .content_repository import CollectionRepository, VideoRepository, CommentRepository
from .activity_repository import ActivityRepository
from .notification_repository import NotificationRepository
from .share_repository import ShareRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "FollowRepository",
    "CollectionRepository",
    "VideoRepository",
    "CommentRepository",
    "ActivityRepository",
    "NotificationRepository",
    "ShareRepository",
]
