"""
Content Models
Collections, videos and comments that activity and notifications refer to
"""

from datetime import datetime
from typing import Dict, Any
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Table,
    Index,
)
from sqlalchemy.orm import relationship

from curation.domain.models import SubjectType
from curation.infrastructure.database.connection import Base


# Collection <-> Video membership
collection_video = Table(
    "collection_video",
    Base.metadata,
    Column(
        "collection_id",
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "video_id",
        Integer,
        ForeignKey("videos.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("position", Integer, nullable=False, default=0),
    Column("added_at", DateTime, nullable=False, default=datetime.utcnow),
)


class Collection(Base):
    """
    Curated collection of videos owned by a user
    """

    __tablename__ = "collections"

    subject_type = SubjectType.COLLECTION

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text)
    cover_image = Column(String(500))
    is_public = Column(Boolean, nullable=False, default=True)

    # Counters
    view_count = Column(BigInteger, default=0)
    like_count = Column(Integer, default=0)
    video_count = Column(Integer, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    owner = relationship("User", back_populates="collections")
    videos = relationship(
        "Video", secondary=collection_video, back_populates="collections"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "is_public": bool(self.is_public),
            "view_count": self.view_count or 0,
            "like_count": self.like_count or 0,
            "video_count": self.video_count or 0,
        }

    def __repr__(self) -> str:
        return f"<Collection(id={self.id}, slug='{self.slug}')>"


class Video(Base):
    """
    YouTube video referenced by one or more collections
    """

    __tablename__ = "videos"

    subject_type = SubjectType.VIDEO

    id = Column(Integer, primary_key=True, autoincrement=True)
    youtube_id = Column(String(50), nullable=False, unique=True, index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    thumbnail_url = Column(String(500))
    channel_name = Column(String(255))
    channel_id = Column(String(50))
    duration = Column(Integer, comment="Length in seconds")
    published_at = Column(DateTime)

    view_count = Column(BigInteger, default=0)
    like_count = Column(BigInteger, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    collections = relationship(
        "Collection", secondary=collection_video, back_populates="videos"
    )

    @property
    def watch_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.youtube_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "youtube_id": self.youtube_id,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "channel_name": self.channel_name,
            "duration": self.duration,
        }

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, youtube_id='{self.youtube_id}')>"


class Comment(Base):
    """
    Comment on a collection or a video

    `commentable_type` holds a `SubjectType` value.
    """

    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_commentable", "commentable_type", "commentable_id"),
    )

    subject_type = SubjectType.COMMENT

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    commentable_type = Column(String(20), nullable=False)
    commentable_id = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    author = relationship("User")

    def excerpt(self, length: int = 100) -> str:
        """First `length` characters of the comment body"""
        return (self.content or "")[:length]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "commentable_type": self.commentable_type,
            "commentable_id": self.commentable_id,
            "content": self.content,
        }

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, on={self.commentable_type}:{self.commentable_id})>"
