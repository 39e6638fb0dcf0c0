"""
Notification Model
Per-recipient notification with read/unread lifecycle
"""

from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship

from curation.domain.models import SubjectRef
from curation.infrastructure.database.connection import Base


class Notification(Base):
    """
    Notification addressed to `user_id`

    `read_at` stays NULL until explicitly marked read.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
        Index("idx_notifications_actor_created", "actor_id", "created_at"),
        Index("idx_notifications_read_at", "read_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Recipient
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Delivery target, currently always the recipient
    notifiable_type = Column(String(20), nullable=False, default="user")
    notifiable_id = Column(Integer, nullable=False)

    type = Column(String(50), nullable=False, index=True)
    actor_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    subject_type = Column(String(20), nullable=False)
    subject_id = Column(Integer, nullable=False)

    data = Column(JSON, nullable=False, default=dict)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    actor = relationship("User", foreign_keys=[actor_id])

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @property
    def subject_ref(self) -> Optional[SubjectRef]:
        return SubjectRef.parse(self.subject_type, self.subject_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "actor_id": self.actor_id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "data": self.data or {},
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user_id={self.user_id}, "
            f"type='{self.type}', read={self.is_read})>"
        )
