# tests/unit/test_activity_service.py
"""
Unit Tests for ActivityService
Tests recording, aggregation, feeds, statistics and cleanup
"""

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select, func

from curation.app.models import ActivityLog
from curation.domain.models import ActivityAction, SubjectRef, SubjectType, Visibility
from curation.services.activity_service import RequestContext, aggregation_key_for, parse_action
from curation.services.exceptions import (
    InvalidActionError,
    InvalidVisibilityError,
    ResourceNotFoundError,
    ValidationError,
    WriteFailureError,
)


async def count_entries(session) -> int:
    result = await session.execute(select(func.count()).select_from(ActivityLog))
    return int(result.scalar_one())


# ============================================================================
# Pure Helpers
# ============================================================================


class TestAggregationKey:
    """Test merge key construction"""

    def test_public_key_ignores_actor(self):
        ref = SubjectRef(SubjectType.COLLECTION, 7)
        first = aggregation_key_for(ActivityAction.COLLECTION_LIKED, ref, Visibility.PUBLIC, 1)
        second = aggregation_key_for(ActivityAction.COLLECTION_LIKED, ref, Visibility.PUBLIC, 2)

        assert first == second == "collection.liked|collection:7|public"

    def test_private_key_includes_actor(self):
        ref = SubjectRef(SubjectType.COLLECTION, 7)
        first = aggregation_key_for(ActivityAction.COLLECTION_LIKED, ref, Visibility.PRIVATE, 1)
        second = aggregation_key_for(ActivityAction.COLLECTION_LIKED, ref, Visibility.PRIVATE, 2)

        assert first != second
        assert first.endswith("|actor:1")

    def test_actorless_has_no_key(self):
        ref = SubjectRef(SubjectType.VIDEO, 3)
        assert aggregation_key_for(ActivityAction.VIDEO_ADDED, ref, Visibility.PUBLIC, None) is None

    def test_explicit_key_is_appended(self):
        ref = SubjectRef(SubjectType.COLLECTION, 7)
        key = aggregation_key_for(
            ActivityAction.COLLECTION_LIKED, ref, Visibility.PRIVATE, 1, "campaign"
        )

        assert key == "collection.liked|collection:7|private|actor:1|key:campaign"

    def test_explicit_key_scoped_by_action_and_subject(self):
        collection = SubjectRef(SubjectType.COLLECTION, 1)
        video = SubjectRef(SubjectType.VIDEO, 2)
        liked = aggregation_key_for(
            ActivityAction.COLLECTION_LIKED, collection, Visibility.PUBLIC, 1, "k"
        )

        assert liked != aggregation_key_for(
            ActivityAction.VIDEO_LIKED, video, Visibility.PUBLIC, 2, "k"
        )
        assert liked != aggregation_key_for(
            ActivityAction.COLLECTION_LIKED, collection, Visibility.FOLLOWERS, 1, "k"
        )

    def test_actorless_with_explicit_key(self):
        ref = SubjectRef(SubjectType.VIDEO, 3)
        key = aggregation_key_for(ActivityAction.VIDEO_ADDED, ref, Visibility.PUBLIC, None, "import")

        assert key == "video.added|video:3|public|key:import"

    def test_parse_action(self):
        assert parse_action("Collection.Liked ") is ActivityAction.COLLECTION_LIKED
        with pytest.raises(InvalidActionError):
            parse_action("collection.exploded")


# ============================================================================
# Recording
# ============================================================================


class TestRecord:
    """Test recording single entries"""

    @pytest.mark.asyncio
    async def test_record_stores_entry(self, activity_service, bob, collection, clock):
        """Test a new entry carries subject, target and payload"""
        entry = await activity_service.record(
            bob,
            "collection.liked",
            collection,
            target_user_id=collection.user_id,
            context=RequestContext(ip_address="10.0.0.1", user_agent="pytest"),
        )

        assert entry.id is not None
        assert entry.user_id == bob.id
        assert entry.action == "collection.liked"
        assert entry.subject_type == "collection"
        assert entry.subject_id == collection.id
        assert entry.target_user_id == collection.user_id
        assert entry.visibility == "public"
        assert entry.aggregated_count == 1
        assert entry.properties["subject_title"] == "Synthwave Essentials"
        assert entry.properties["other_users"] == []
        assert entry.ip_address == "10.0.0.1"
        assert entry.created_at == clock()

    @pytest.mark.asyncio
    async def test_record_with_subject_ref(self, activity_service, bob, collection):
        """Test a SubjectRef subject is resolved for its title"""
        entry = await activity_service.record(
            bob, "collection.liked", SubjectRef(SubjectType.COLLECTION, collection.id)
        )

        assert entry.properties["subject_title"] == collection.title

    @pytest.mark.asyncio
    async def test_invalid_action_rejected(self, activity_service, db_session, bob, collection):
        with pytest.raises(InvalidActionError):
            await activity_service.record(bob, "collection.exploded", collection)

        assert await count_entries(db_session) == 0

    @pytest.mark.asyncio
    async def test_invalid_visibility_rejected(self, activity_service, db_session, bob, collection):
        with pytest.raises(InvalidVisibilityError):
            await activity_service.record(bob, "collection.liked", collection, visibility="friends")

        assert await count_entries(db_session) == 0

    @pytest.mark.asyncio
    async def test_non_subject_rejected(self, activity_service, bob):
        with pytest.raises(ValidationError):
            await activity_service.record(bob, "collection.liked", object())

    @pytest.mark.asyncio
    async def test_payload_validated_against_action(self, activity_service, bob, video):
        """Test video.added requires its titles"""
        with pytest.raises(ValidationError) as exc_info:
            await activity_service.record(bob, "video.added", video)

        assert exc_info.value.field == "properties"

    @pytest.mark.asyncio
    async def test_other_users_cannot_be_injected(self, activity_service, bob, collection):
        entry = await activity_service.record(
            bob,
            "collection.liked",
            collection,
            properties={"other_users": [{"id": 99, "username": "mallory"}]},
        )

        assert entry.other_users == []
        assert entry.aggregated_count == 1


# ============================================================================
# Aggregation
# ============================================================================


class TestAggregation:
    """Test folding repeated actions into one entry"""

    @pytest.mark.asyncio
    async def test_distinct_actors_fold_into_one_entry(
        self, activity_service, db_session, bob, carol, dave, collection
    ):
        """Test N actors inside the window give one entry with count N"""
        first = await activity_service.record(bob, "collection.liked", collection)
        second = await activity_service.record(carol, "collection.liked", collection)
        third = await activity_service.record(dave, "collection.liked", collection)

        assert first.id == second.id == third.id
        assert third.aggregated_count == 3
        assert [u["username"] for u in third.other_users] == ["carol", "dave"]
        assert third.folded_actor_ids == [bob.id, carol.id, dave.id]
        assert third.is_aggregated
        assert await count_entries(db_session) == 1

    @pytest.mark.asyncio
    async def test_fold_moves_updated_at(self, activity_service, bob, carol, collection, clock):
        first = await activity_service.record(bob, "collection.liked", collection)
        clock.advance(hours=2)
        folded = await activity_service.record(carol, "collection.liked", collection)

        assert folded.id == first.id
        assert folded.updated_at == clock()
        assert folded.created_at < folded.updated_at

    @pytest.mark.asyncio
    async def test_same_actor_is_counted_once(
        self, activity_service, db_session, bob, collection
    ):
        """Test repeating an action does not inflate the count"""
        first = await activity_service.record(bob, "collection.liked", collection)
        again = await activity_service.record(bob, "collection.liked", collection)

        assert again.id == first.id
        assert again.aggregated_count == 1
        assert again.other_users == []
        assert await count_entries(db_session) == 1

    @pytest.mark.asyncio
    async def test_new_entry_after_window(
        self, activity_service, db_session, bob, carol, collection, clock
    ):
        """Test an action after the window starts a fresh entry"""
        first = await activity_service.record(bob, "collection.liked", collection)
        clock.advance(hours=6, seconds=1)
        second = await activity_service.record(carol, "collection.liked", collection)

        assert second.id != first.id
        assert second.aggregated_count == 1
        assert await count_entries(db_session) == 2

        # The fresh entry now receives folds
        third = await activity_service.record(bob, "collection.liked", collection)
        assert third.id == second.id
        assert third.aggregated_count == 2

    @pytest.mark.asyncio
    async def test_window_is_sliding(self, activity_service, bob, carol, dave, collection, clock):
        """Test each fold extends the window from the latest update"""
        first = await activity_service.record(bob, "collection.liked", collection)
        clock.advance(hours=5)
        await activity_service.record(carol, "collection.liked", collection)
        clock.advance(hours=5)
        third = await activity_service.record(dave, "collection.liked", collection)

        assert third.id == first.id
        assert third.aggregated_count == 3

    @pytest.mark.asyncio
    async def test_different_subjects_do_not_fold(
        self, activity_service, db_session, bob, carol, collection, video
    ):
        await activity_service.record(bob, "collection.liked", collection)
        await activity_service.record(carol, "video.liked", video)

        assert await count_entries(db_session) == 2

    @pytest.mark.asyncio
    async def test_private_entries_never_fold_across_actors(
        self, activity_service, db_session, bob, carol, collection
    ):
        """Test private counts only ever include one actor"""
        bobs = await activity_service.record(
            bob, "collection.liked", collection, visibility="private"
        )
        carols = await activity_service.record(
            carol, "collection.liked", collection, visibility="private"
        )
        bobs_again = await activity_service.record(
            bob, "collection.liked", collection, visibility="private"
        )

        assert bobs.id != carols.id
        assert bobs_again.id == bobs.id
        assert bobs_again.aggregated_count == 1
        assert carols.aggregated_count == 1
        assert await count_entries(db_session) == 2

    @pytest.mark.asyncio
    async def test_public_and_private_do_not_mix(
        self, activity_service, db_session, bob, carol, collection
    ):
        await activity_service.record(bob, "collection.liked", collection)
        await activity_service.record(carol, "collection.liked", collection, visibility="private")

        assert await count_entries(db_session) == 2

    @pytest.mark.asyncio
    async def test_actorless_entries_stand_alone(self, activity_service, db_session, collection):
        first = await activity_service.record(None, "collection.created", collection)
        second = await activity_service.record(None, "collection.created", collection)

        assert first.id != second.id
        assert first.aggregation_key is None
        assert await count_entries(db_session) == 2

    @pytest.mark.asyncio
    async def test_actorless_entries_fold_with_explicit_key(
        self, activity_service, db_session, collection
    ):
        first = await activity_service.record(
            None, "collection.created", collection, aggregation_key="nightly-import"
        )
        second = await activity_service.record(
            None, "collection.created", collection, aggregation_key="nightly-import"
        )

        assert first.id == second.id
        assert second.aggregated_count == 2
        assert await count_entries(db_session) == 1

    @pytest.mark.asyncio
    async def test_explicit_key_does_not_merge_actions_or_subjects(
        self, activity_service, db_session, bob, carol, collection, video
    ):
        liked = await activity_service.record(
            bob, "collection.liked", collection, aggregation_key="campaign"
        )
        liked_id = liked.id
        video_liked = await activity_service.record(
            carol, "video.liked", video, aggregation_key="campaign"
        )

        assert video_liked.id != liked_id
        assert video_liked.action == "video.liked"
        assert video_liked.aggregated_count == 1
        assert await count_entries(db_session) == 2

    @pytest.mark.asyncio
    async def test_explicit_key_keeps_private_entries_apart(
        self, activity_service, db_session, bob, carol, collection
    ):
        private = await activity_service.record(
            bob, "collection.liked", collection, visibility="private", aggregation_key="p"
        )
        private_id = private.id
        public = await activity_service.record(
            carol, "collection.liked", collection, aggregation_key="p"
        )

        assert public.id != private_id
        assert public.visibility == "public"
        assert await count_entries(db_session) == 2

        reloaded = await db_session.get(ActivityLog, private_id)
        await db_session.refresh(reloaded)
        assert reloaded.aggregated_count == 1
        assert not reloaded.properties.get("other_users")

    @pytest.mark.asyncio
    async def test_lost_fold_race_is_retried(
        self, activity_service, monkeypatch, bob, carol, collection
    ):
        """Test a fold that loses the compare-and-swap re-reads and succeeds"""
        first = await activity_service.record(bob, "collection.liked", collection)

        real_fold = activity_service.activity_repo.try_fold
        attempts = []

        async def flaky_fold(entry, properties, now):
            attempts.append(entry.id)
            if len(attempts) == 1:
                return False
            return await real_fold(entry, properties, now)

        monkeypatch.setattr(activity_service.activity_repo, "try_fold", flaky_fold)
        folded = await activity_service.record(carol, "collection.liked", collection)

        assert attempts == [first.id, first.id]
        assert folded.id == first.id
        assert folded.aggregated_count == 2

    @pytest.mark.asyncio
    async def test_persistent_conflicts_raise_write_failure(
        self, activity_service, monkeypatch, bob, carol, collection
    ):
        """Test conflicts beyond the retry budget surface as WriteFailureError"""
        await activity_service.record(bob, "collection.liked", collection)

        try_fold = AsyncMock(return_value=False)
        monkeypatch.setattr(activity_service.activity_repo, "try_fold", try_fold)

        with pytest.raises(WriteFailureError) as exc_info:
            await activity_service.record(carol, "collection.liked", collection)

        assert try_fold.await_count == activity_service.max_retries + 1
        assert "aggregation_key" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_lost_slot_race_is_retried(
        self, activity_service, monkeypatch, bob, collection
    ):
        """Test losing the slot to another writer re-reads and tries again"""
        real_open = activity_service.activity_repo.try_open
        attempts = []

        async def flaky_open(values, key, stale_entry_id=None):
            attempts.append(key)
            if len(attempts) <= 2:
                return None
            return await real_open(values, key, stale_entry_id=stale_entry_id)

        monkeypatch.setattr(activity_service.activity_repo, "try_open", flaky_open)
        entry = await activity_service.record(bob, "collection.liked", collection)

        assert len(attempts) == 3
        assert entry.id is not None
        assert entry.aggregated_count == 1


# ============================================================================
# Typed Helpers
# ============================================================================


class TestDomainHelpers:
    """Test the per-action recording helpers"""

    @pytest.mark.asyncio
    async def test_video_added(self, activity_service, alice, video, collection):
        entry = await activity_service.video_added(alice, video, collection)

        assert entry.action == "video.added"
        assert entry.properties["video_title"] == video.title
        assert entry.properties["collection_title"] == collection.title
        assert entry.target_user_id == alice.id

    @pytest.mark.asyncio
    async def test_video_liked_targets_collection_owner(self, activity_service, alice, bob, video):
        entry = await activity_service.video_liked(bob, video)

        assert entry.target_user_id == alice.id
        assert entry.subject_type == "video"

    @pytest.mark.asyncio
    async def test_video_liked_without_owner(self, activity_service, bob, orphan_video):
        entry = await activity_service.video_liked(bob, orphan_video)

        assert entry.target_user_id is None

    @pytest.mark.asyncio
    async def test_comment_added(self, activity_service, alice, bob, comment, collection):
        entry = await activity_service.comment_added(bob, comment, collection)

        assert entry.subject_type == "comment"
        assert entry.subject_id == comment.id
        assert entry.target_user_id == alice.id
        assert entry.properties["subject_title"] == collection.title
        assert entry.properties["comment_content"] == comment.content[:100]

    @pytest.mark.asyncio
    async def test_user_followed(self, activity_service, alice, bob):
        entry = await activity_service.user_followed(bob, alice)

        assert entry.subject_type == "user"
        assert entry.subject_id == alice.id
        assert entry.target_user_id == alice.id
        assert entry.properties["subject_title"] == "alice"

    @pytest.mark.asyncio
    async def test_collection_shared(self, activity_service, bob, collection):
        entry = await activity_service.collection_shared(bob, collection, "twitter")

        assert entry.properties["platform"] == "twitter"

    @pytest.mark.asyncio
    async def test_collection_shared_rejects_unknown_platform(
        self, activity_service, bob, collection
    ):
        with pytest.raises(ValidationError):
            await activity_service.collection_shared(bob, collection, "myspace")


# ============================================================================
# Feeds
# ============================================================================


@pytest.fixture
def feed_entries(activity_service, follow, alice, bob, carol, dave, collection):
    """
    bob: public like (targets alice)
    carol: followers-only like (no target), followed by dave
    bob: private like (no target)
    """

    async def _build():
        await follow(dave, carol)
        public = await activity_service.record(
            bob, "collection.liked", collection, target_user_id=alice.id
        )
        followers = await activity_service.record(
            carol, "collection.liked", collection, visibility="followers"
        )
        private = await activity_service.record(
            bob, "collection.liked", collection, visibility="private"
        )
        return public, followers, private

    return _build


class TestFeeds:
    """Test visibility-filtered feeds"""

    @pytest.mark.asyncio
    async def test_global_feed_is_public_only(self, activity_service, feed_entries):
        public, _, _ = await feed_entries()

        feed = await activity_service.global_feed()

        assert [e.id for e in feed] == [public.id]

    @pytest.mark.asyncio
    async def test_user_activities_respect_visibility(
        self, activity_service, feed_entries, alice, bob, carol, dave
    ):
        public, followers, private = await feed_entries()

        assert {e.id for e in await activity_service.user_activities(carol.id, dave.id)} == {
            followers.id
        }
        assert await activity_service.user_activities(carol.id, alice.id) == []
        assert await activity_service.user_activities(carol.id, None) == []

        own = await activity_service.user_activities(bob.id, bob.id)
        assert {e.id for e in own} == {public.id, private.id}

        anonymous = await activity_service.user_activities(bob.id, None)
        assert [e.id for e in anonymous] == [public.id]

    @pytest.mark.asyncio
    async def test_personalized_feed(self, activity_service, feed_entries, alice, bob, dave):
        public, followers, private = await feed_entries()

        daves = {e.id for e in await activity_service.personalized_feed(dave.id)}
        assert daves == {public.id, followers.id}

        alices = {e.id for e in await activity_service.personalized_feed(alice.id)}
        assert alices == {public.id}

        # Own entries are left out
        bobs = {e.id for e in await activity_service.personalized_feed(bob.id)}
        assert public.id not in bobs
        assert private.id not in bobs

    @pytest.mark.asyncio
    async def test_feed_entries_have_relations_loaded(self, activity_service, feed_entries, bob):
        await feed_entries()

        feed = await activity_service.global_feed()

        assert feed[0].user.username == "bob"
        assert feed[0].target_user.username == "alice"

    @pytest.mark.asyncio
    async def test_targeted_activities(self, activity_service, feed_entries, alice):
        public, _, _ = await feed_entries()

        targeted = await activity_service.targeted_activities(alice.id)

        assert [e.id for e in targeted] == [public.id]

    @pytest.mark.asyncio
    async def test_public_user_activities(self, activity_service, feed_entries):
        public, _, _ = await feed_entries()

        entries = await activity_service.public_user_activities("bob")

        assert [e.id for e in entries] == [public.id]

    @pytest.mark.asyncio
    async def test_public_user_activities_unknown_user(self, activity_service):
        with pytest.raises(ResourceNotFoundError):
            await activity_service.public_user_activities("nobody")

    @pytest.mark.asyncio
    async def test_feed_limit_is_capped(self, activity_service, config):
        assert activity_service._page(None) == config.activity.default_feed_limit
        assert activity_service._page(10_000) == config.activity.max_feed_limit
        assert activity_service._page(5) == 5


class TestFilteredActivities:
    """Test filtered listings"""

    @pytest.mark.asyncio
    async def test_filter_by_action_and_subject(
        self, activity_service, alice, bob, collection, video
    ):
        liked = await activity_service.record(bob, "collection.liked", collection)
        await activity_service.video_added(alice, video, collection)

        by_action = await activity_service.filtered_activities(action="collection.liked")
        by_subject = await activity_service.filtered_activities(subject_type="video")

        assert [e.id for e in by_action] == [liked.id]
        assert [e.action for e in by_subject] == ["video.added"]

    @pytest.mark.asyncio
    async def test_filter_by_actor(self, activity_service, alice, bob, collection):
        await activity_service.record(bob, "collection.liked", collection)
        created = await activity_service.collection_created(alice, collection)

        entries = await activity_service.filtered_activities(actor_id=alice.id)

        assert [e.id for e in entries] == [created.id]

    @pytest.mark.asyncio
    async def test_filter_by_period(self, activity_service, bob, collection, clock):
        await activity_service.record(bob, "collection.liked", collection)

        assert len(await activity_service.filtered_activities(period="hour")) == 1
        clock.advance(hours=2)
        assert await activity_service.filtered_activities(period="hour") == []
        assert len(await activity_service.filtered_activities(period="day")) == 1

    @pytest.mark.asyncio
    async def test_invalid_filters_rejected(self, activity_service):
        with pytest.raises(InvalidActionError):
            await activity_service.filtered_activities(action="video.exploded")
        with pytest.raises(InvalidActionError):
            await activity_service.filtered_activities(subject_type="playlist")
        with pytest.raises(InvalidActionError):
            await activity_service.filtered_activities(period="decade")


class TestGetEntry:
    """Test single entry lookup"""

    @pytest.mark.asyncio
    async def test_visible_entry(self, activity_service, bob, collection):
        entry = await activity_service.record(bob, "collection.liked", collection)

        loaded = await activity_service.get_entry(entry.id)

        assert loaded.id == entry.id
        assert loaded.user.username == "bob"

    @pytest.mark.asyncio
    async def test_private_entry_hidden_from_others(self, activity_service, bob, carol, collection):
        entry = await activity_service.record(
            bob, "collection.liked", collection, visibility="private"
        )

        assert (await activity_service.get_entry(entry.id, bob.id)).id == entry.id
        with pytest.raises(ResourceNotFoundError):
            await activity_service.get_entry(entry.id, carol.id)
        with pytest.raises(ResourceNotFoundError):
            await activity_service.get_entry(entry.id)

    @pytest.mark.asyncio
    async def test_missing_entry(self, activity_service):
        with pytest.raises(ResourceNotFoundError):
            await activity_service.get_entry(12345)

    @pytest.mark.asyncio
    async def test_require_user(self, activity_service, bob):
        assert (await activity_service.require_user(bob.id)).username == "bob"
        with pytest.raises(ResourceNotFoundError):
            await activity_service.require_user(999)


# ============================================================================
# Statistics & Maintenance
# ============================================================================


class TestStatistics:
    @pytest.mark.asyncio
    async def test_user_activity_stats(self, activity_service, alice, bob, collection, clock):
        await activity_service.collection_created(alice, collection)
        await activity_service.record(alice, "collection.shared", collection, properties={"platform": "link"})
        await activity_service.record(bob, "collection.liked", collection)

        stats = await activity_service.user_activity_stats(alice.id)

        assert stats["total_activities"] == 2
        assert stats["activities_by_type"] == {"collection.created": 1, "collection.shared": 1}
        assert stats["last_activity"] == clock().isoformat()

    @pytest.mark.asyncio
    async def test_stats_for_inactive_user(self, activity_service, dave):
        stats = await activity_service.user_activity_stats(dave.id)

        assert stats == {"total_activities": 0, "activities_by_type": {}, "last_activity": None}


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_old_activities(
        self, activity_service, db_session, bob, carol, collection, clock
    ):
        await activity_service.record(bob, "collection.liked", collection)
        clock.advance(days=80)
        await activity_service.record(carol, "collection.liked", collection)
        clock.advance(days=11)

        deleted = await activity_service.cleanup_old_activities()

        assert deleted == 1
        assert await count_entries(db_session) == 1
        assert await activity_service.cleanup_old_activities() == 0

    @pytest.mark.asyncio
    async def test_cleanup_with_explicit_days(self, activity_service, db_session, bob, collection, clock):
        await activity_service.record(bob, "collection.liked", collection)
        clock.advance(days=2)

        assert await activity_service.cleanup_old_activities(days=1) == 1
        assert await count_entries(db_session) == 0
