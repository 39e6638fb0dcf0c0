"""
Collection Share Model
Tracks a collection shared to an external platform and its click/view analytics
"""

from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from curation.domain.models import ShareType
from curation.infrastructure.database.connection import Base


class CollectionShare(Base):
    """
    Share record

    `expires_at` is set iff `share_type == "temporary"`.
    """

    __tablename__ = "collection_shares"
    __table_args__ = (
        CheckConstraint(
            "(share_type = 'temporary') = (expires_at IS NOT NULL)",
            name="ck_share_expiry_iff_temporary",
        ),
        Index("idx_shares_collection_created", "collection_id", "created_at"),
        Index("idx_shares_platform_created", "platform", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection_id = Column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    # Anonymous shares allowed
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    platform = Column(String(20), nullable=False)
    url = Column(String(1000), nullable=False)
    share_type = Column(String(20), nullable=False, default=ShareType.PUBLIC.value)
    shared_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)

    # `metadata` is reserved on declarative classes
    share_metadata = Column("metadata", JSON, nullable=False, default=dict)
    analytics = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    collection = relationship("Collection")
    user = relationship("User")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when an expiry is set and has been reached"""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return not self.is_expired(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "collection_id": self.collection_id,
            "user_id": self.user_id,
            "platform": self.platform,
            "url": self.url,
            "share_type": self.share_type,
            "shared_at": self.shared_at.isoformat() if self.shared_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "metadata": self.share_metadata or {},
            "analytics": self.analytics or {},
        }

    def __repr__(self) -> str:
        return (
            f"<CollectionShare(id={self.id}, collection_id={self.collection_id}, "
            f"platform='{self.platform}', type='{self.share_type}')>"
        )
