# tests/unit/test_repositories.py
"""
Unit Tests for the repositories
Tests generic CRUD, the follower graph and the aggregation slot writes
"""

import pytest
from datetime import datetime, timedelta

from curation.app.models import ActivityLog, User, UserProfile
from curation.infrastructure.repositories import (
    ActivityRepository,
    FollowRepository,
    UserRepository,
    VideoRepository,
)


# ============================================================================
# Generic CRUD
# ============================================================================


@pytest.mark.asyncio
async def test_create_user(db_session):
    """Test creating a user"""
    repo = UserRepository(db_session)

    user = await repo.create(username="erin", email="erin@example.com")

    assert user.id is not None
    assert user.username == "erin"
    assert await repo.exists(user.id)


@pytest.mark.asyncio
async def test_get_by_id_and_many(db_session, users):
    repo = UserRepository(db_session)
    alice, bob = users["alice"], users["bob"]

    assert (await repo.get_by_id(alice.id)).username == "alice"
    assert await repo.get_by_id(999) is None

    found = await repo.get_many([alice.id, bob.id, 999, None])
    assert set(found) == {alice.id, bob.id}


@pytest.mark.asyncio
async def test_get_all_paginates(db_session, users):
    """Test pagination and ordering"""
    repo = UserRepository(db_session)

    first_page = await repo.get_all(skip=0, limit=2)
    second_page = await repo.get_all(skip=2, limit=2)
    newest_first = await repo.get_all(order_by="id")

    assert [u.username for u in first_page] == ["alice", "bob"]
    assert [u.username for u in second_page] == ["carol", "dave"]
    assert newest_first[0].username == "dave"


@pytest.mark.asyncio
async def test_find_and_count(db_session, users):
    repo = UserRepository(db_session)

    assert [u.username for u in await repo.find_by(username="carol")] == ["carol"]
    assert (await repo.find_one_by(email="dave@example.com")).username == "dave"
    assert await repo.find_one_by(username="nobody") is None
    assert await repo.count() == 4
    assert await repo.count(username="bob") == 1


@pytest.mark.asyncio
async def test_update_user(db_session, users):
    """Test updating a user"""
    repo = UserRepository(db_session)

    updated = await repo.update(users["bob"].id, email="robert@example.com")

    assert updated.email == "robert@example.com"
    assert await repo.update(999, email="x@example.com") is None


@pytest.mark.asyncio
async def test_delete_user(db_session):
    repo = UserRepository(db_session)
    user = await repo.create(username="temp", email="temp@example.com")
    user_id = user.id

    assert await repo.delete(user_id) is True
    assert await repo.delete(user_id) is False
    assert not await repo.exists(user_id)


@pytest.mark.asyncio
async def test_get_by_username_and_profile(db_session, alice):
    repo = UserRepository(db_session)
    db_session.add(UserProfile(user_id=alice.id, bio="Curates synthwave", is_verified=True))
    await db_session.commit()

    user = await repo.get_with_profile(alice.id)

    assert (await repo.get_by_username("alice")).id == alice.id
    assert await repo.get_by_username("nobody") is None
    assert user.profile.bio == "Curates synthwave"
    assert user.profile.to_dict()["is_verified"] is True


# ============================================================================
# Follower Graph
# ============================================================================


@pytest.mark.asyncio
async def test_follow_graph(db_session, users):
    """Test follow edges and lookups"""
    repo = FollowRepository(db_session)
    alice_id, bob_id, carol_id = (users[n].id for n in ("alice", "bob", "carol"))

    await repo.follow(bob_id, alice_id)
    await repo.follow(carol_id, alice_id)
    await repo.follow(bob_id, carol_id)

    assert await repo.is_following(bob_id, alice_id)
    assert not await repo.is_following(alice_id, bob_id)
    assert await repo.following_ids(bob_id) == {alice_id, carol_id}
    assert await repo.follower_ids(alice_id) == sorted([bob_id, carol_id])


@pytest.mark.asyncio
async def test_follow_twice_returns_existing_edge(db_session, users):
    repo = FollowRepository(db_session)
    alice_id, bob_id = users["alice"].id, users["bob"].id

    first = await repo.follow(bob_id, alice_id)
    first_id = first.id
    second = await repo.follow(bob_id, alice_id)

    assert second.id == first_id
    assert await repo.count(follower_id=bob_id) == 1


@pytest.mark.asyncio
async def test_unfollow(db_session, users):
    repo = FollowRepository(db_session)
    alice_id, bob_id = users["alice"].id, users["bob"].id
    await repo.follow(bob_id, alice_id)

    assert await repo.unfollow(bob_id, alice_id) is True
    assert await repo.unfollow(bob_id, alice_id) is False
    assert not await repo.is_following(bob_id, alice_id)


# ============================================================================
# Content
# ============================================================================


@pytest.mark.asyncio
async def test_primary_collection(db_session, video, orphan_video, collection):
    repo = VideoRepository(db_session)

    primary = await repo.get_primary_collection(video.id)

    assert primary.id == collection.id
    assert await repo.get_primary_collection(orphan_video.id) is None


# ============================================================================
# Aggregation Slot Writes
# ============================================================================


KEY = "collection.liked|collection:1|public"
START = datetime(2026, 1, 15, 12, 0, 0)


def entry_values(user: User) -> dict:
    return {
        "user_id": user.id,
        "action": "collection.liked",
        "subject_type": "collection",
        "subject_id": 1,
        "properties": {"other_users": []},
        "visibility": "public",
        "created_at": START,
        "updated_at": START,
    }


@pytest.mark.asyncio
async def test_open_claims_slot(db_session, bob):
    repo = ActivityRepository(db_session)

    entry = await repo.try_open(entry_values(bob), KEY)

    assert entry.aggregation_key == KEY
    assert entry.aggregation_slot == KEY
    assert entry.aggregated_count == 1
    assert (await repo.get_open_entry(KEY)).id == entry.id


@pytest.mark.asyncio
async def test_second_open_without_release_loses(db_session, bob, carol):
    repo = ActivityRepository(db_session)
    first = await repo.try_open(entry_values(bob), KEY)
    first_id = first.id

    assert await repo.try_open(entry_values(carol), KEY) is None
    assert (await repo.get_open_entry(KEY)).id == first_id
    assert await repo.count() == 1


@pytest.mark.asyncio
async def test_open_releases_stale_slot(db_session, bob, carol):
    repo = ActivityRepository(db_session)
    stale = await repo.try_open(entry_values(bob), KEY)

    fresh = await repo.try_open(entry_values(carol), KEY, stale_entry_id=stale.id)
    await db_session.refresh(stale)

    assert fresh.aggregation_slot == KEY
    assert stale.aggregation_slot is None
    assert stale.aggregation_key == KEY
    assert (await repo.get_open_entry(KEY)).id == fresh.id


@pytest.mark.asyncio
async def test_fold_increments_count(db_session, bob, carol):
    repo = ActivityRepository(db_session)
    entry = await repo.try_open(entry_values(bob), KEY)
    later = START + timedelta(minutes=5)
    properties = {"other_users": [{"id": carol.id, "username": "carol"}]}

    assert await repo.try_fold(entry, properties, later) is True
    assert entry.aggregated_count == 2
    assert entry.updated_at == later
    assert entry.created_at == START
    assert entry.folded_actor_ids == [bob.id, carol.id]


@pytest.mark.asyncio
async def test_fold_with_stale_count_loses(db_session, bob):
    repo = ActivityRepository(db_session)
    entry = await repo.try_open(entry_values(bob), KEY)
    stale = ActivityLog(id=entry.id, aggregated_count=5, aggregation_key=KEY)

    folded = await repo.try_fold(stale, {"other_users": []}, START)
    current = await repo.get_open_entry(KEY)

    assert folded is False
    assert current.aggregated_count == 1
