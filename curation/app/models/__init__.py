"""
ORM Models
Importing this package registers every table on Base.metadata
"""

from curation.infrastructure.database.connection import Base
from curation.app.models.user import User, UserProfile, Follow
from curation.app.models.content import Collection, Video, Comment, collection_video
from curation.app.models.activity import ActivityLog
from curation.app.models.notification import Notification
from curation.app.models.share import CollectionShare

__all__ = [
    "Base",
    "User",
    "UserProfile",
    "Follow",
    "Collection",
    "Video",
    "Comment",
    "collection_video",
    "ActivityLog",
    "Notification",
    "CollectionShare",
]
