"""
Database Setup Script
Creates the database tables and optionally seeds demo activity
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env before configuration is read
ROOT_DIR = Path(__file__).resolve().parent.parent
ENV_FILE = ROOT_DIR / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)

from curation.app.config import get_config, validate_config, setup_logging
from curation.app.database import check_connection, init_db, reset_database
from curation.app.models import Collection, User, Video
from curation.infrastructure.database import db_manager
from curation.infrastructure.repositories import CollectionRepository, FollowRepository
from curation.services import EventService, SharingService


async def seed_demo_data() -> None:
    """Two curators, a collection with one video, a follow, a like and a share"""
    async with db_manager.session() as session:
        alice = User(username="alice", email="alice@example.com")
        bob = User(username="bob", email="bob@example.com")
        session.add_all([alice, bob])
        await session.commit()

        collection = Collection(
            user_id=alice.id, title="Synthwave Essentials", slug="synthwave-essentials"
        )
        video = Video(youtube_id="dQw4w9WgXcQ", title="Never Gonna Give You Up")
        session.add_all([collection, video])
        await session.commit()
        await CollectionRepository(session).add_video(collection.id, video.id, position=1)

        events = EventService(session)
        await events.collection_created(alice, collection)
        await events.video_added(alice, video, collection)

        await FollowRepository(session).follow(bob.id, alice.id)
        await events.user_followed(bob, alice)
        await events.collection_liked(bob, collection)

        share = await SharingService(session).share_collection(collection, bob, "twitter")
        await events.collection_shared(bob, collection, share.platform)

    print("✅ Demo data seeded (users: alice, bob)")


async def run(seed: bool, reset: bool) -> None:
    print("🔌 Checking connection...")
    if not await check_connection():
        raise RuntimeError("Database connection failed")
    print("✅ Connected")

    if reset:
        print("♻️  Dropping and recreating tables...")
        await reset_database()
    else:
        print("📊 Creating tables...")
        await init_db()

    if seed:
        print("🌱 Seeding demo data...")
        await seed_demo_data()

    await db_manager.close()


def _report(title: str, items) -> None:
    if items:
        print(f"\n{title}")
        for item in items:
            print(f"  • {item}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the activity core tables")
    parser.add_argument("--seed", action="store_true", help="insert demo users and activity")
    parser.add_argument("--reset", action="store_true", help="drop every table first")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    validation = validate_config()
    _report("⚠️  Config warnings:", validation["warnings"])
    if not validation["valid"]:
        _report("❌ Config errors:", validation["errors"])
        return 1

    print(f"🗄️  Target: {get_config().database.url}")
    try:
        asyncio.run(run(seed=args.seed, reset=args.reset))
    except Exception as e:
        logging.getLogger(__name__).exception(f"❌ Setup aborted: {e}")
        return 1

    print("🎉 Tables ready")
    return 0


if __name__ == "__main__":
    sys.exit(main())
