"""
Visibility Filter
Decides which activity entries a viewer may see

Rules:
- public: everyone, anonymous viewers included
- private: the actor and the target user only
- followers: the actor, the target user and followers of the actor

Feeds apply `visibility_clause` inside the SQL query so invisible entries
never reach the caller, not even as counts. `is_visible` is the same rule for
a single, already-loaded entry.
"""

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import and_, false, or_

from curation.app.models import ActivityLog
from curation.domain.interfaces import FollowGraph, VisibilityTarget
from curation.domain.models import Visibility
from curation.services.exceptions import InvalidVisibilityError

logger = logging.getLogger(__name__)


def parse_visibility(value: Any) -> Visibility:
    """
    Validate a visibility tag before it is stored

    Raises:
        InvalidVisibilityError: Tag outside public/private/followers
    """
    if isinstance(value, Visibility):
        return value
    try:
        return Visibility(str(value).strip().lower())
    except ValueError:
        raise InvalidVisibilityError(value) from None


def is_visible(
    entry: VisibilityTarget,
    viewer_id: Optional[int],
    viewer_follows_actor: bool = False,
) -> bool:
    """
    Pure visibility check for one entry

    Args:
        entry: Anything with user_id, target_user_id and visibility
        viewer_id: Viewer (None for anonymous)
        viewer_follows_actor: Whether the viewer follows entry.user_id

    Returns:
        True if the viewer may see the entry
    """
    try:
        visibility = Visibility(entry.visibility)
    except ValueError:
        # Unknown stored tags fail closed
        logger.warning(f"⚠️ Unknown visibility '{entry.visibility}' treated as private")
        visibility = Visibility.PRIVATE

    if visibility is Visibility.PUBLIC:
        return True
    if viewer_id is None:
        return False

    is_party = viewer_id == entry.user_id or viewer_id == entry.target_user_id
    if visibility is Visibility.PRIVATE:
        return is_party
    return is_party or viewer_follows_actor


async def visible_to(
    entry: VisibilityTarget, viewer_id: Optional[int], follows: FollowGraph
) -> bool:
    """
    Visibility check that consults the follower graph when needed

    The graph is only queried for followers-only entries the viewer is not
    already a party to.
    """
    if is_visible(entry, viewer_id):
        return True
    if (
        viewer_id is None
        or entry.user_id is None
        or entry.visibility != Visibility.FOLLOWERS.value
    ):
        return False
    return await follows.is_following(viewer_id, entry.user_id)


def visibility_clause(viewer_id: Optional[int], followed_ids: Iterable[int] = ()):
    """
    SQL WHERE clause selecting the entries visible to a viewer

    Args:
        viewer_id: Viewer (None for anonymous)
        followed_ids: Ids of users the viewer follows

    Returns:
        SQLAlchemy boolean expression over ActivityLog
    """
    public = ActivityLog.visibility == Visibility.PUBLIC.value
    if viewer_id is None:
        return public

    followed = list(followed_ids)
    followers_only = (
        and_(
            ActivityLog.visibility == Visibility.FOLLOWERS.value,
            ActivityLog.user_id.in_(followed),
        )
        if followed
        else false()
    )
    return or_(
        public,
        ActivityLog.user_id == viewer_id,
        ActivityLog.target_user_id == viewer_id,
        followers_only,
    )


class VisibilityFilter:
    """
    Binds the visibility rule to a follower graph

    Usage:
        visibility = VisibilityFilter(FollowRepository(session))
        clause = await visibility.clause_for(viewer_id)
    """

    def __init__(self, follows: FollowGraph):
        self.follows = follows

    async def visible_to(self, entry: VisibilityTarget, viewer_id: Optional[int]) -> bool:
        return await visible_to(entry, viewer_id, self.follows)

    async def clause_for(self, viewer_id: Optional[int]):
        if viewer_id is None:
            return visibility_clause(None)
        followed = await self.follows.following_ids(viewer_id)
        return visibility_clause(viewer_id, followed)
