"""
Activity Log Model
One row per (possibly aggregated) user action shown in activity feeds
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from curation.domain.models import SubjectRef, Visibility
from curation.infrastructure.database.connection import Base


class ActivityLog(Base):
    """
    Activity log entry

    Repeated compatible actions inside the aggregation window fold into the
    newest entry for their `aggregation_key`: `aggregated_count` grows and the
    extra actors are listed in `properties["other_users"]`.

    `aggregation_slot` is held (equal to `aggregation_key`) only by the open
    entry for a key. The UNIQUE constraint on it serializes concurrent
    find-or-create calls for the same key.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        CheckConstraint("aggregated_count >= 1", name="ck_activity_count_positive"),
        Index("idx_activity_user_created", "user_id", "created_at"),
        Index("idx_activity_action_created", "action", "created_at"),
        Index("idx_activity_target_created", "target_user_id", "created_at"),
        Index("idx_activity_visibility_created", "visibility", "created_at"),
        Index("idx_activity_subject", "subject_type", "subject_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Actor (NULL for system actions)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    action = Column(String(100), nullable=False, comment="domain.verb tag")

    # Polymorphic subject (SubjectType value + id)
    subject_type = Column(String(20), nullable=False)
    subject_id = Column(Integer, nullable=False)

    target_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    properties = Column(JSON, nullable=False, default=dict)
    visibility = Column(
        String(20), nullable=False, default=Visibility.PUBLIC.value
    )
    aggregated_count = Column(Integer, nullable=False, default=1)

    # Aggregation bookkeeping
    aggregation_key = Column(String(255), nullable=True, index=True)
    aggregation_slot = Column(String(255), nullable=True, unique=True)

    # Request context
    ip_address = Column(String(45))
    user_agent = Column(Text)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships (never lazy-loaded implicitly; use selectinload)
    user = relationship("User", foreign_keys=[user_id])
    target_user = relationship("User", foreign_keys=[target_user_id])

    @property
    def subject_ref(self) -> Optional[SubjectRef]:
        return SubjectRef.parse(self.subject_type, self.subject_id)

    @property
    def is_aggregated(self) -> bool:
        return (self.aggregated_count or 1) > 1

    @property
    def other_users(self) -> List[Dict[str, Any]]:
        return list((self.properties or {}).get("other_users", []))

    @property
    def folded_actor_ids(self) -> List[int]:
        """Every actor counted in this entry, first actor included"""
        ids = [self.user_id] if self.user_id is not None else []
        return ids + [u["id"] for u in self.other_users]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "target_user_id": self.target_user_id,
            "properties": self.properties or {},
            "visibility": self.visibility,
            "aggregated_count": self.aggregated_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<ActivityLog(id={self.id}, action='{self.action}', "
            f"subject={self.subject_type}:{self.subject_id}, "
            f"count={self.aggregated_count})>"
        )
