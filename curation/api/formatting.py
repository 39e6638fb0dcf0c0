"""
Presentation Formatting
Pure helpers that turn stored values into display strings and metrics
"""

import re
from datetime import datetime
from typing import Dict, Mapping, Optional


# ============================================================================
# Label Dictionaries
# ============================================================================

ACTION_LABELS: Dict[str, str] = {
    "collection.created": "Created Collection",
    "collection.liked": "Liked Collection",
    "collection.shared": "Shared Collection",
    "video.added": "Added Video",
    "video.liked": "Liked Video",
    "comment.added": "Added Comment",
    "user.followed": "Followed User",
}

NOTIFICATION_TYPE_LABELS: Dict[str, str] = {
    "collection_liked": "Collection Liked",
    "video_liked": "Video Liked",
    "comment_added": "Comment Added",
    "user_followed": "User Followed",
    "collection_shared": "Collection Shared",
}

PLATFORM_LABELS: Dict[str, str] = {
    "twitter": "Twitter",
    "facebook": "Facebook",
    "linkedin": "LinkedIn",
    "email": "Email",
    "link": "Direct Link",
}

_SEPARATORS = re.compile(r"[._\-\s]+")

# (seconds, singular unit), largest first
_UNITS = (
    (365 * 24 * 3600, "year"),
    (30 * 24 * 3600, "month"),
    (7 * 24 * 3600, "week"),
    (24 * 3600, "day"),
    (3600, "hour"),
    (60, "minute"),
    (1, "second"),
)


def humanize_tag(tag: Optional[str]) -> str:
    """
    Generic label for a tag with no dictionary entry

    Example:
        humanize_tag("foo.bar_baz") -> "Foo Bar Baz"
    """
    words = [w for w in _SEPARATORS.split(tag or "") if w]
    return " ".join(w[:1].upper() + w[1:] for w in words)


def label_for(tag: Optional[str], labels: Mapping[str, str]) -> str:
    if tag in labels:
        return labels[tag]
    return humanize_tag(tag)


def format_action(action: Optional[str]) -> str:
    return label_for(action, ACTION_LABELS)


def format_notification_type(type: Optional[str]) -> str:
    return label_for(type, NOTIFICATION_TYPE_LABELS)


def format_platform(platform: Optional[str]) -> str:
    return label_for(platform, PLATFORM_LABELS)


# ============================================================================
# Time & Metrics
# ============================================================================


def time_ago(timestamp: Optional[datetime], now: datetime) -> Optional[str]:
    """
    Human phrase for a timestamp relative to now

    Args:
        timestamp: Moment to describe (None gives None)
        now: Render time

    Returns:
        e.g. "3 hours ago", "2 days from now", "just now"
    """
    if timestamp is None:
        return None

    seconds = (now - timestamp).total_seconds()
    distance = abs(seconds)
    if distance < 1:
        return "just now"

    for size, unit in _UNITS:
        if distance >= size:
            count = int(distance // size)
            break
    suffix = "ago" if seconds > 0 else "from now"
    plural = "" if count == 1 else "s"
    return f"{count} {unit}{plural} {suffix}"


def engagement_rate(clicks: int, views: int) -> float:
    """
    Clicks per view as a percentage, rounded to 2 decimals

    Zero views gives 0.0.
    """
    if not views:
        return 0.0
    return round(clicks / views * 100, 2)
