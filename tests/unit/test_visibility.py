# tests/unit/test_visibility.py
"""
Unit Tests for the visibility rule
Tests the pure check, the follower-aware check and the SQL clause
"""

import pytest
from dataclasses import dataclass
from typing import Optional
from unittest.mock import AsyncMock

from curation.domain.interfaces import FollowGraph
from curation.infrastructure.repositories import FollowRepository
from curation.services.exceptions import InvalidVisibilityError
from curation.services.visibility import (
    VisibilityFilter,
    is_visible,
    parse_visibility,
    visible_to,
)


@dataclass
class Entry:
    user_id: Optional[int]
    target_user_id: Optional[int]
    visibility: str


ACTOR, TARGET, FOLLOWER, STRANGER = 1, 2, 3, 4


def follow_graph(following: bool = False) -> AsyncMock:
    graph = AsyncMock(spec=FollowRepository)
    graph.is_following = AsyncMock(return_value=following)
    graph.following_ids = AsyncMock(return_value=set())
    return graph


class TestIsVisible:
    """Test the pure visibility rule"""

    def test_public_visible_to_everyone(self):
        entry = Entry(ACTOR, TARGET, "public")

        assert is_visible(entry, None)
        assert is_visible(entry, STRANGER)

    @pytest.mark.parametrize(
        "viewer,expected",
        [(ACTOR, True), (TARGET, True), (FOLLOWER, False), (STRANGER, False), (None, False)],
    )
    def test_private(self, viewer, expected):
        entry = Entry(ACTOR, TARGET, "private")

        assert is_visible(entry, viewer, viewer_follows_actor=viewer == FOLLOWER) is expected

    @pytest.mark.parametrize(
        "viewer,follows,expected",
        [
            (ACTOR, False, True),
            (TARGET, False, True),
            (FOLLOWER, True, True),
            (STRANGER, False, False),
            (None, False, False),
        ],
    )
    def test_followers(self, viewer, follows, expected):
        entry = Entry(ACTOR, TARGET, "followers")

        assert is_visible(entry, viewer, viewer_follows_actor=follows) is expected

    def test_unknown_visibility_fails_closed(self):
        entry = Entry(ACTOR, None, "friends-of-friends")

        assert not is_visible(entry, STRANGER)
        assert is_visible(entry, ACTOR)

    def test_parse_visibility(self):
        assert parse_visibility(" Followers ").value == "followers"
        with pytest.raises(InvalidVisibilityError):
            parse_visibility("everyone")


class TestVisibleTo:
    """Test the follower-aware check"""

    def test_repository_satisfies_protocol(self):
        assert isinstance(FollowRepository(None), FollowGraph)

    @pytest.mark.asyncio
    async def test_follower_sees_followers_entry(self):
        graph = follow_graph(following=True)

        assert await visible_to(Entry(ACTOR, None, "followers"), FOLLOWER, graph)
        graph.is_following.assert_awaited_once_with(FOLLOWER, ACTOR)

    @pytest.mark.asyncio
    async def test_non_follower_denied(self):
        graph = follow_graph(following=False)

        assert not await visible_to(Entry(ACTOR, None, "followers"), STRANGER, graph)

    @pytest.mark.asyncio
    async def test_graph_not_consulted_when_unneeded(self):
        graph = follow_graph(following=True)

        assert await visible_to(Entry(ACTOR, None, "public"), STRANGER, graph)
        assert not await visible_to(Entry(ACTOR, None, "private"), STRANGER, graph)
        assert not await visible_to(Entry(ACTOR, None, "followers"), None, graph)
        graph.is_following.assert_not_awaited()


class TestVisibilityClause:
    """Test the SQL rule matches the pure rule on stored rows"""

    @pytest.mark.asyncio
    async def test_clause_matches_pure_rule(
        self, activity_service, follow, alice, bob, carol, dave, collection
    ):
        await follow(dave, bob)
        entries = [
            await activity_service.record(bob, "collection.liked", collection, visibility=visibility)
            for visibility in ("public", "private", "followers")
        ]
        entries.append(
            await activity_service.record(
                carol,
                "collection.liked",
                collection,
                target_user_id=alice.id,
                visibility="private",
            )
        )
        visibility = VisibilityFilter(activity_service.follow_repo)

        for viewer in (None, alice.id, bob.id, carol.id, dave.id):
            clause = await visibility.clause_for(viewer)
            listed = await activity_service.activity_repo.list_entries(clause)
            expected = {
                e.id
                for e in entries
                if await visibility.visible_to(e, viewer)
            }
            assert {e.id for e in listed} == expected, f"viewer={viewer}"

        dave_sees = {e.visibility for e in entries if await visibility.visible_to(e, dave.id)}
        assert dave_sees == {"public", "followers"}
