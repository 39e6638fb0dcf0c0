"""
Domain-facing collaborator interfaces (Protocols).

These reflect only what the activity services actually consume. Concrete
repositories satisfy them via duck typing; there is no inheritance
requirement.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Protocol, Set, runtime_checkable

# Injectable source of "now" (naive UTC, like the stored timestamps)
Clock = Callable[[], datetime]


@runtime_checkable
class FollowGraph(Protocol):
    """Read-only follower relationship consumed by the visibility filter."""

    async def is_following(self, follower_id: int, followed_id: int) -> bool: ...

    async def following_ids(self, follower_id: int) -> Set[int]:
        """Ids of every user `follower_id` follows."""
        ...


@runtime_checkable
class VisibilityTarget(Protocol):
    """Anything carrying the fields the visibility rule inspects."""

    user_id: Optional[int]
    target_user_id: Optional[int]
    visibility: str

