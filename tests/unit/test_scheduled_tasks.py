# tests/unit/test_scheduled_tasks.py
"""
Unit Tests for the Celery maintenance tasks
Tasks run eagerly against a throwaway SQLite file
"""

import asyncio
import pytest
from datetime import datetime, timedelta

from curation.app.models import Collection, CollectionShare, Notification, User
from curation.infrastructure.database.connection import DatabaseManager
from curation.infrastructure.tasks import celery_app
from curation.infrastructure.tasks.scheduled_tasks import (
    cleanup_expired_shares,
    cleanup_old_activities,
    cleanup_old_notifications,
)


@pytest.fixture
def task_db(tmp_path, monkeypatch):
    """Point every task at a fresh database seeded with stale rows"""
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}")
    long_ago = datetime.utcnow() - timedelta(days=400)

    async def seed():
        await manager.create_tables()
        async with manager.session() as session:
            alice = User(username="alice", email="alice@example.com")
            bob = User(username="bob", email="bob@example.com")
            session.add_all([alice, bob])
            await session.flush()

            collection = Collection(user_id=alice.id, title="Old", slug="old")
            session.add(collection)
            await session.flush()

            session.add_all(
                [
                    CollectionShare(
                        collection_id=collection.id,
                        platform="link",
                        url="http://localhost:8000/collections/old",
                        share_type="temporary",
                        expires_at=datetime.utcnow() - timedelta(hours=1),
                    ),
                    CollectionShare(
                        collection_id=collection.id,
                        platform="twitter",
                        url="https://twitter.com/intent/tweet?url=x",
                        share_type="public",
                    ),
                    Notification(
                        user_id=alice.id,
                        notifiable_id=alice.id,
                        type="collection_liked",
                        actor_id=bob.id,
                        subject_type="collection",
                        subject_id=collection.id,
                        data={"action": "liked your collection"},
                        created_at=long_ago,
                        updated_at=long_ago,
                    ),
                ]
            )
            await session.commit()
        await manager.engine.dispose()

    asyncio.run(seed())
    for task in (cleanup_expired_shares, cleanup_old_activities, cleanup_old_notifications):
        monkeypatch.setattr(task, "_db", manager)
    return manager


class TestBeatSchedule:
    """Test periodic task registration"""

    def test_tasks_registered(self):
        for name in (
            "tasks.scheduled.cleanup_old_activities",
            "tasks.scheduled.cleanup_old_notifications",
            "tasks.scheduled.cleanup_expired_shares",
        ):
            assert name in celery_app.tasks

    def test_schedule(self):
        schedule = celery_app.conf.beat_schedule

        assert schedule["cleanup-old-activities"]["task"] == "tasks.scheduled.cleanup_old_activities"
        assert schedule["cleanup-old-activities"]["schedule"].hour == {3}
        assert schedule["cleanup-old-notifications"]["schedule"].minute == {30}
        assert schedule["cleanup-expired-shares"]["schedule"].minute == {45}

    def test_default_queue(self, config):
        assert celery_app.conf.task_default_queue == config.celery.task_default_queue


class TestCleanupTasks:
    """Test the cleanup tasks against a real database"""

    def test_cleanup_expired_shares(self, task_db):
        assert cleanup_expired_shares.run() == {"shares_deleted": 1}

    def test_cleanup_old_notifications(self, task_db):
        assert cleanup_old_notifications.run() == {"notifications_deleted": 1}

    def test_cleanup_old_activities(self, task_db):
        assert cleanup_old_activities.run(days=30) == {"activities_deleted": 0}
