"""
Domain Layer
Value types, typed payloads and collaborator protocols
"""

from curation.domain.models import (
    SubjectType,
    Visibility,
    ActivityAction,
    NotificationType,
    SharePlatform,
    ShareType,
    FeedPeriod,
    SubjectRef,
    SubjectSummary,
    FoldedActor,
    ActivityProperties,
    NotificationData,
)
from curation.domain.interfaces import Clock, FollowGraph, VisibilityTarget

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
    "NotificationData",
    "Clock",
    "FollowGraph",
    "VisibilityTarget",
]
