# tests/conftest.py
"""
Shared fixtures: in-memory database, a controllable clock, sample curators
and content, and services wired to both
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from curation.app.config import get_config
from curation.app.models import Base, Collection, Comment, User, Video
from curation.infrastructure.repositories import CollectionRepository, FollowRepository
from curation.services import (
    ActivityService,
    EventService,
    NotificationService,
    SharingService,
)


START = datetime(2026, 1, 15, 12, 0, 0)


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current += timedelta(**delta)
        return self.current


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,  # Required for in-memory SQLite
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine):
    """Create async database session for testing"""
    async_session = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return get_config()


# ============================================================================
# Sample Data
# ============================================================================


async def _add(session, *instances):
    session.add_all(instances)
    await session.commit()
    for instance in instances:
        await session.refresh(instance)
    return instances


@pytest_asyncio.fixture
async def users(db_session):
    """alice owns the sample collection; bob, carol and dave interact with it"""
    alice, bob, carol, dave = await _add(
        db_session,
        User(username="alice", email="alice@example.com"),
        User(username="bob", email="bob@example.com"),
        User(username="carol", email="carol@example.com"),
        User(username="dave", email="dave@example.com"),
    )
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave}


@pytest_asyncio.fixture
async def alice(users):
    return users["alice"]


@pytest_asyncio.fixture
async def bob(users):
    return users["bob"]


@pytest_asyncio.fixture
async def carol(users):
    return users["carol"]


@pytest_asyncio.fixture
async def dave(users):
    return users["dave"]


@pytest_asyncio.fixture
async def collection(db_session, alice):
    (collection,) = await _add(
        db_session,
        Collection(
            user_id=alice.id,
            title="Synthwave Essentials",
            slug="synthwave-essentials",
            description="Neon-soaked favourites",
        ),
    )
    return collection


@pytest_asyncio.fixture
async def video(db_session, collection):
    """Video in alice's collection, so alice is its owner"""
    (video,) = await _add(
        db_session,
        Video(youtube_id="dQw4w9WgXcQ", title="Never Gonna Give You Up"),
    )
    await CollectionRepository(db_session).add_video(collection.id, video.id, position=1)
    return video


@pytest_asyncio.fixture
async def orphan_video(db_session):
    """Video that belongs to no collection"""
    (video,) = await _add(
        db_session,
        Video(youtube_id="9bZkp7q19f0", title="Gangnam Style"),
    )
    return video


@pytest_asyncio.fixture
async def comment(db_session, bob, collection):
    (comment,) = await _add(
        db_session,
        Comment(
            user_id=bob.id,
            commentable_type=collection.subject_type.value,
            commentable_id=collection.id,
            content="This playlist got me through finals week. " * 5,
        ),
    )
    return comment


@pytest_asyncio.fixture
async def follow(db_session):
    """Create follow edges: await follow(follower, followed)"""
    repo = FollowRepository(db_session)

    async def _follow(follower: User, followed: User):
        return await repo.follow(follower.id, followed.id)

    return _follow


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def activity_service(db_session, config, clock):
    return ActivityService(db_session, config=config, clock=clock)


@pytest.fixture
def notification_service(db_session, config, clock):
    return NotificationService(db_session, config=config, clock=clock)


@pytest.fixture
def sharing_service(db_session, config, clock):
    return SharingService(db_session, config=config, clock=clock)


@pytest.fixture
def event_service(db_session, config, clock, activity_service, notification_service):
    return EventService(
        db_session,
        config=config,
        clock=clock,
        activities=activity_service,
        notifications=notification_service,
    )
