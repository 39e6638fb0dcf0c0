"""
Sharing Service
Collection shares, share URLs and click/view analytics
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote_plus

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curation.api.formatting import engagement_rate
from curation.app.config import Config
from curation.app.models import Collection, CollectionShare, User, Video
from curation.domain.interfaces import Clock
from curation.domain.models import SharePlatform, ShareType
from curation.infrastructure.repositories import (
    CollectionRepository,
    ShareRepository,
    UserRepository,
    VideoRepository,
)
from curation.infrastructure.repositories.share_repository import (
    active_clause,
    expired_clause,
)
from curation.services.base_service import BaseService
from curation.services.exceptions import (
    BusinessRuleViolationError,
    ResourceNotFoundError,
    ValidationError,
    WriteFailureError,
)


# Analytics counters and the timestamp key each one stamps
TRACKED_METRICS: Dict[str, str] = {
    "clicks": "last_click",
    "views": "last_view",
}


def parse_platform(value: Union[str, SharePlatform]) -> SharePlatform:
    if isinstance(value, SharePlatform):
        return value
    try:
        return SharePlatform(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown platform: {value!r}", field="platform") from None


def parse_share_type(value: Union[str, ShareType]) -> ShareType:
    if isinstance(value, ShareType):
        return value
    try:
        return ShareType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown share type: {value!r}", field="share_type") from None


def platform_share_url(platform: SharePlatform, url: str, title: str) -> str:
    """
    Build the outbound share URL for a platform

    `link` and `iframe` share the canonical URL itself.
    """
    if platform is SharePlatform.TWITTER:
        return (
            f"https://twitter.com/intent/tweet?url={quote_plus(url)}"
            f"&text={quote_plus(title)}"
        )
    if platform is SharePlatform.FACEBOOK:
        return f"https://www.facebook.com/sharer/sharer.php?u={quote_plus(url)}"
    if platform is SharePlatform.LINKEDIN:
        return f"https://www.linkedin.com/sharing/share-offsite/?url={quote_plus(url)}"
    if platform is SharePlatform.EMAIL:
        return (
            f"mailto:?subject={quote_plus(title)}"
            f"&body={quote_plus(f'Check out this collection: {url}')}"
        )
    return url


def summarize_analytics(shares: List[CollectionShare]) -> Dict[str, Any]:
    """Totals and per-platform breakdown over a list of shares"""
    total_clicks = 0
    total_views = 0
    platform_stats: Dict[str, Dict[str, int]] = {}

    for share in shares:
        analytics = share.analytics or {}
        clicks = int(analytics.get("clicks", 0))
        views = int(analytics.get("views", 0))
        total_clicks += clicks
        total_views += views

        stats = platform_stats.setdefault(
            share.platform, {"clicks": 0, "views": 0, "shares": 0}
        )
        stats["clicks"] += clicks
        stats["views"] += views
        stats["shares"] += 1

    return {
        "total_clicks": total_clicks,
        "total_views": total_views,
        "total_shares": len(shares),
        "platform_stats": platform_stats,
        "engagement_rate": engagement_rate(total_clicks, total_views),
    }


def trending_score(share: CollectionShare) -> float:
    analytics = share.analytics or {}
    return analytics.get("clicks", 0) + analytics.get("views", 0) * 0.1


class SharingService(BaseService):
    """
    Service for collection shares

    Handles:
    - Creating shares with generated platform URLs
    - Click / view tracking
    - Revocation and expiry cleanup
    - Share analytics and embed codes
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(config=config, clock=clock)
        self.session = session
        self.share_repo = ShareRepository(session)
        self.collection_repo = CollectionRepository(session)
        self.video_repo = VideoRepository(session)
        self.user_repo = UserRepository(session)
        self.base_url = self.config.api.public_base_url
        self.max_retries = self.config.activity.max_conflict_retries

    def get_service_name(self) -> str:
        return "sharing"

    def collection_url(self, collection: Collection) -> str:
        return f"{self.base_url}/collections/{collection.slug}"

    async def _require(self, repo, resource_type: str, id: int):
        entity = await repo.get_by_id(id)
        if entity is None:
            raise ResourceNotFoundError(resource_type, id)
        return entity

    async def get_collection(self, collection_id: int) -> Collection:
        return await self._require(self.collection_repo, "Collection", collection_id)

    async def get_video(self, video_id: int) -> Video:
        return await self._require(self.video_repo, "Video", video_id)

    async def get_user(self, user_id: int) -> User:
        return await self._require(self.user_repo, "User", user_id)

    async def get_share(self, share_id: int) -> CollectionShare:
        return await self._require(self.share_repo, "CollectionShare", share_id)

    # ========================================================================
    # Sharing
    # ========================================================================

    async def share_collection(
        self,
        collection: Collection,
        user: Optional[User],
        platform: Union[str, SharePlatform],
        custom_url: Optional[str] = None,
        share_type: Union[str, ShareType] = ShareType.PUBLIC,
        expires_at: Optional[datetime] = None,
    ) -> CollectionShare:
        """
        Record a share of a collection

        Args:
            collection: Shared collection
            user: Sharing user (None for anonymous)
            platform: Target platform
            custom_url: Use this URL instead of a generated one
            share_type: public, private or temporary
            expires_at: Expiry; temporary shares only. Aware values are
                converted to UTC

        Returns:
            Created share

        Raises:
            ValidationError: Unknown platform/type, or expiry on a non-temporary share
            WriteFailureError: Store rejected the write
        """
        platform = parse_platform(platform)
        share_type = parse_share_type(share_type)
        now = self.now()

        if expires_at is not None and expires_at.tzinfo is not None:
            # Stored and compared as naive UTC
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)

        if share_type is ShareType.TEMPORARY:
            if expires_at is None:
                expires_at = now + timedelta(
                    hours=self.config.sharing.default_temporary_hours
                )
        elif expires_at is not None:
            raise ValidationError(
                "Only temporary shares can expire",
                field="expires_at",
                share_type=share_type.value,
            )

        canonical = self.collection_url(collection)
        url = custom_url or platform_share_url(platform, canonical, collection.title)

        try:
            share = await self.share_repo.create(
                collection_id=collection.id,
                user_id=user.id if user is not None else None,
                platform=platform.value,
                url=url,
                share_type=share_type.value,
                shared_at=now,
                expires_at=expires_at,
                share_metadata={
                    "platform": platform.value,
                    "share_type": share_type.value,
                    "original_url": canonical,
                },
                analytics={},
                created_at=now,
                updated_at=now,
            )
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Sharing collection")

        self.log_info(
            f"✅ Collection {collection.id} shared on {platform.value}",
            share_id=share.id,
            share_type=share_type.value,
        )
        return share

    async def share_video(
        self,
        video: Video,
        user: User,
        platform: Union[str, SharePlatform],
        custom_url: Optional[str] = None,
        share_type: Union[str, ShareType] = ShareType.PUBLIC,
        expires_at: Optional[datetime] = None,
    ) -> CollectionShare:
        """
        Share a video through its first collection

        A video that belongs to no collection gets a single-video collection
        owned by the sharing user.
        """
        collection = await self.video_repo.get_primary_collection(video.id)
        if collection is None:
            try:
                collection = await self.collection_repo.create(
                    user_id=user.id,
                    title=f"Shared Video: {video.title}",
                    description=f"Video shared by {user.username}",
                    slug=f"shared-video-{video.id}",
                    is_public=True,
                )
                await self.collection_repo.add_video(collection.id, video.id, position=1)
            except SQLAlchemyError as e:
                raise self.handle_error(e, "Creating collection for shared video")
            self.log_info(
                f"✅ Created collection {collection.id} for shared video {video.id}"
            )

        return await self.share_collection(
            collection, user, platform, custom_url, share_type, expires_at
        )

    # ========================================================================
    # Tracking & Lifecycle
    # ========================================================================

    async def track(self, share: CollectionShare, metric: str) -> CollectionShare:
        """
        Increment a share counter ("clicks" or "views")

        Raises:
            ValidationError: Unknown metric
            BusinessRuleViolationError: Share has expired
            WriteFailureError: Concurrent updates kept winning
        """
        stamp_key = TRACKED_METRICS.get(metric)
        if stamp_key is None:
            raise ValidationError(f"Unknown metric: {metric!r}", field="metric")

        for attempt in range(self.max_retries + 1):
            now = self.now()
            if share.is_expired(now):
                raise BusinessRuleViolationError(
                    "Share has expired", details={"share_id": share.id}
                )

            analytics = dict(share.analytics or {})
            analytics[metric] = int(analytics.get(metric, 0)) + 1
            analytics[stamp_key] = now.isoformat()

            try:
                if await self.share_repo.replace_analytics(share, analytics, now):
                    self.log_debug(f"Tracked {metric} on share {share.id}")
                    return share
            except SQLAlchemyError as e:
                raise self.handle_error(e, "Tracking share analytics")

            self.log_warning(
                f"⚠️ Concurrent analytics update on share {share.id}", attempt=attempt + 1
            )
            await self.session.refresh(share)

        raise WriteFailureError(
            "Share analytics update kept conflicting",
            details={"share_id": share.id, "metric": metric},
        )

    async def revoke(self, share: CollectionShare) -> CollectionShare:
        """Expire a share immediately"""
        now = self.now()
        try:
            revoked = await self.share_repo.update(
                share.id,
                share_type=ShareType.TEMPORARY.value,
                expires_at=now,
                updated_at=now,
            )
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Revoking share")
        self.log_info(f"🗑️ Share {share.id} revoked")
        return revoked or share

    async def cleanup_expired_shares(self) -> int:
        try:
            deleted = await self.share_repo.delete_expired(self.now())
        except SQLAlchemyError as e:
            raise self.handle_error(e, "Share cleanup")
        self.log_info(f"🗑️ Deleted {deleted} expired shares")
        return deleted

    # ========================================================================
    # Queries & Analytics
    # ========================================================================

    async def active_shares(self, collection: Collection) -> List[CollectionShare]:
        return await self.share_repo.list_for_collection(
            collection.id, active_at=self.now()
        )

    async def collection_share_analytics(self, collection: Collection) -> Dict[str, Any]:
        """
        Click/view totals for a collection's shares

        Returns:
            Totals, per-platform stats, the ten most recent click/view events
            and the engagement rate
        """
        shares = await self.share_repo.list_for_collection(collection.id)
        summary = summarize_analytics(shares)

        recent: List[Dict[str, Any]] = []
        for share in shares:
            analytics = share.analytics or {}
            for event, key in (("click", "last_click"), ("view", "last_view")):
                if analytics.get(key):
                    recent.append(
                        {
                            "type": event,
                            "platform": share.platform,
                            "timestamp": analytics[key],
                            "share_id": share.id,
                        }
                    )
        recent.sort(key=lambda item: item["timestamp"], reverse=True)
        summary["recent_activity"] = recent[:10]
        return summary

    async def user_share_analytics(self, user: User) -> Dict[str, Any]:
        shares = await self.share_repo.list_for_user(user.id)
        summary = summarize_analytics(shares)
        summary["collections_shared"] = len({s.collection_id for s in shares})
        summary["average_clicks_per_share"] = (
            summary["total_clicks"] / len(shares) if shares else 0.0
        )
        return summary

    async def trending_shares(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Shares ranked by clicks + views * 0.1"""
        shares = await self.share_repo.list_with_analytics()
        ranked = sorted(shares, key=trending_score, reverse=True)[:limit]
        return [
            {"share": share, "engagement_score": trending_score(share)}
            for share in ranked
        ]

    async def share_statistics_summary(self) -> Dict[str, Any]:
        now = self.now()
        total = await self.share_repo.count()
        active = await self.share_repo.count_where(active_clause(now))
        expired = await self.share_repo.count_where(expired_clause(now))
        return {
            "total_shares": total,
            "active_shares": active,
            "expired_shares": expired,
            "platform_distribution": await self.share_repo.count_by_platform(),
            "expiration_rate": expired / total * 100 if total else 0.0,
        }

    def embed_code(
        self, collection: Collection, platform: Union[str, SharePlatform] = SharePlatform.LINK
    ) -> str:
        """iframe snippet for `iframe`, the plain collection URL otherwise"""
        url = self.collection_url(collection)
        if parse_platform(platform) is SharePlatform.IFRAME:
            return (
                f'<iframe src="{url}/embed" width="100%" '
                f'height="{self.config.sharing.embed_height}" '
                f'style="border: none;"></iframe>'
            )
        return url
