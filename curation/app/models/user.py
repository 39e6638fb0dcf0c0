"""
User Models
Users, their public profiles and the follower graph
"""

from datetime import datetime
from typing import Dict, Any
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from curation.domain.models import SubjectType
from curation.infrastructure.database.connection import Base


class User(Base):
    """
    Platform user

    Acts as actor, recipient and target of activity and notifications.
    """

    __tablename__ = "users"

    subject_type = SubjectType.USER

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    profile = relationship(
        "UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    collections = relationship(
        "Collection", back_populates="owner", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        """Name shown in notifications (username, falling back to email)"""
        return self.username or self.email

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class UserProfile(Base):
    """Public curator profile attached to a user"""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    bio = Column(Text)
    avatar = Column(String(500))
    website = Column(String(500))
    location = Column(String(255))
    is_verified = Column(Boolean, default=False)
    is_featured_curator = Column(Boolean, default=False)
    follower_count = Column(Integer, default=0)
    following_count = Column(Integer, default=0)
    collection_count = Column(Integer, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user = relationship("User", back_populates="profile")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bio": self.bio,
            "avatar": self.avatar,
            "website": self.website,
            "location": self.location,
            "is_verified": bool(self.is_verified),
            "is_featured_curator": bool(self.is_featured_curator),
            "follower_count": self.follower_count or 0,
            "following_count": self.following_count or 0,
            "collection_count": self.collection_count or 0,
        }

    def __repr__(self) -> str:
        return f"<UserProfile(user_id={self.user_id})>"


class Follow(Base):
    """Directed follower edge: follower_id follows following_id"""

    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
        Index("idx_follows_following", "following_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    following_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    follower = relationship("User", foreign_keys=[follower_id])
    following = relationship("User", foreign_keys=[following_id])

    def __repr__(self) -> str:
        return f"<Follow({self.follower_id} -> {self.following_id})>"
