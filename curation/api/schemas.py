"""
API Schemas
Request models and presenters that shape entities for transport

Presenters are pure: relations are read only if already loaded on the
instance, and `now` is passed in so relative times are computed per render.
A relation key is absent when it was not requested and null when it was
requested but is empty.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import inspect

from curation.api.formatting import (
    engagement_rate,
    format_action,
    format_notification_type,
    format_platform,
    time_ago,
)
from curation.app.models import ActivityLog, Collection, CollectionShare, Notification, User
from curation.domain.models import (
    SharePlatform,
    ShareType,
    SubjectSummary,
    Visibility,
)


# Passed as `subject` when the caller did not resolve it
NOT_LOADED: Any = object()


# ============================================================================
# Request Models
# ============================================================================


class RecordActivityRequest(BaseModel):
    """Record an activity entry directly"""

    model_config = ConfigDict(extra="forbid")

    actor_id: Optional[int] = Field(default=None, description="Acting user; omit for system entries")
    action: str = Field(..., description="Namespaced action tag, e.g. collection.liked")
    subject_type: str = Field(..., description="collection, video, comment or user")
    subject_id: int
    target_user_id: Optional[int] = None
    visibility: Visibility = Visibility.PUBLIC
    properties: Dict[str, Any] = Field(default_factory=dict)
    aggregation_key: Optional[str] = Field(default=None, max_length=128)


class ShareCollectionRequest(BaseModel):
    """Share a collection to a platform"""

    model_config = ConfigDict(extra="forbid")

    user_id: Optional[int] = Field(default=None, description="Sharing user; omit for anonymous")
    platform: SharePlatform
    share_type: ShareType = ShareType.PUBLIC
    expires_at: Optional[datetime] = None
    custom_url: Optional[str] = Field(default=None, max_length=1000)


class TrackShareRequest(BaseModel):
    metric: str = Field(..., pattern=r"^(clicks|views)$")


# ============================================================================
# Presenters
# ============================================================================


def is_loaded(instance: Any, relation: str) -> bool:
    """True if the relation is already loaded on the instance"""
    return relation not in inspect(instance).unloaded


def _wants(instance: Any, relation: str, include: Optional[Iterable[str]]) -> bool:
    if include is None:
        return is_loaded(instance, relation)
    return relation in include


def _related(instance: Any, relation: str) -> Any:
    return getattr(instance, relation) if is_loaded(instance, relation) else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    profile = _related(user, "profile")
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "profile": (
            {"avatar": profile.avatar, "bio": profile.bio} if profile is not None else None
        ),
    }


def collection_summary(collection: Optional[Collection]) -> Optional[Dict[str, Any]]:
    if collection is None:
        return None
    owner = _related(collection, "owner")
    return {
        "id": collection.id,
        "title": collection.title,
        "slug": collection.slug,
        "description": collection.description,
        "cover_image": collection.cover_image,
        "is_public": collection.is_public,
        "user": {"id": owner.id, "username": owner.username} if owner is not None else None,
    }


def _subject_record(
    summary: Optional[SubjectSummary], title: Optional[str]
) -> Optional[Dict[str, Any]]:
    if summary is None:
        return None
    record = summary.to_dict()
    if title:
        record["title"] = title
    return record


def activity_to_response(
    entry: ActivityLog,
    now: datetime,
    include: Optional[Iterable[str]] = None,
    subject: Optional[SubjectSummary] = NOT_LOADED,
) -> Dict[str, Any]:
    """
    Shape an activity entry for transport

    Args:
        entry: Activity entry
        now: Render time
        include: Relations to expand (`user`, `target_user`); None expands
            whatever is loaded
        subject: Resolved subject summary, None if it no longer exists;
            omit to leave `subject` out
    """
    properties = entry.properties or {}
    record: Dict[str, Any] = {
        "id": entry.id,
        "action": entry.action,
        "properties": properties,
        "visibility": entry.visibility,
        "aggregated_count": entry.aggregated_count or 1,
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
    }

    for relation in ("user", "target_user"):
        if _wants(entry, relation, include):
            record[relation] = user_summary(_related(entry, relation))
    if subject is not NOT_LOADED:
        record["subject"] = _subject_record(subject, properties.get("subject_title"))

    record.update(
        {
            "time_ago": time_ago(entry.created_at, now),
            "formatted_action": format_action(entry.action),
            "is_aggregated": entry.is_aggregated,
            "other_users": [u.get("username") for u in entry.other_users],
        }
    )
    return record


def notification_to_response(
    notification: Notification,
    now: datetime,
    include: Optional[Iterable[str]] = None,
    subject: Optional[SubjectSummary] = NOT_LOADED,
) -> Dict[str, Any]:
    data = notification.data or {}
    record: Dict[str, Any] = {
        "id": notification.id,
        "type": notification.type,
        "data": data,
        "read_at": _iso(notification.read_at),
        "created_at": _iso(notification.created_at),
        "updated_at": _iso(notification.updated_at),
    }

    if _wants(notification, "actor", include):
        record["actor"] = user_summary(_related(notification, "actor"))
    if subject is not NOT_LOADED:
        record["subject"] = _subject_record(subject, data.get("subject_title"))

    record.update(
        {
            "is_read": notification.is_read,
            "time_ago": time_ago(notification.created_at, now),
            "formatted_type": format_notification_type(notification.type),
        }
    )
    return record


def share_embed_code(share: CollectionShare, embed_height: int = 600) -> str:
    """iframe snippet for iframe shares, the share URL otherwise"""
    if share.platform != SharePlatform.IFRAME.value:
        return share.url
    base = (share.share_metadata or {}).get("original_url") or share.url
    return (
        f'<iframe src="{base}/embed" width="100%" height="{embed_height}" '
        f'style="border: none;"></iframe>'
    )


def share_analytics_summary(share: CollectionShare) -> Dict[str, Any]:
    analytics = share.analytics or {}
    clicks = analytics.get("clicks", 0)
    views = analytics.get("views", 0)
    return {
        "total_clicks": clicks,
        "total_views": views,
        "last_click": analytics.get("last_click"),
        "last_view": analytics.get("last_view"),
        "engagement_rate": engagement_rate(clicks, views),
    }


def share_to_response(
    share: CollectionShare,
    now: datetime,
    include: Optional[Iterable[str]] = None,
    embed_height: int = 600,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": share.id,
        "platform": share.platform,
        "url": share.url,
        "share_type": share.share_type,
        "shared_at": _iso(share.shared_at),
        "expires_at": _iso(share.expires_at),
        "metadata": share.share_metadata or {},
        "analytics": share.analytics or {},
        "created_at": _iso(share.created_at),
        "updated_at": _iso(share.updated_at),
    }

    if _wants(share, "user", include):
        record["user"] = user_summary(_related(share, "user"))
    if _wants(share, "collection", include):
        record["collection"] = collection_summary(_related(share, "collection"))

    expired = share.is_expired(now)
    record.update(
        {
            "is_expired": expired,
            "is_active": not expired,
            "time_ago": time_ago(share.shared_at, now),
            "formatted_platform": format_platform(share.platform),
            "embed_code": share_embed_code(share, embed_height),
            "analytics_summary": share_analytics_summary(share),
        }
    )
    return record
