"""
Sharing API Router
REST endpoints for sharing collections and share analytics
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from curation.api.schemas import ShareCollectionRequest, TrackShareRequest, share_to_response
from curation.app.dependencies import get_sharing_service
from curation.app.models import CollectionShare
from curation.domain.models import SharePlatform
from curation.services import ServiceError, SharingService, error_to_http_status
from curation.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sharing"])


def _present(service: SharingService, share: CollectionShare):
    return share_to_response(
        share, service.now(), embed_height=service.config.sharing.embed_height
    )


def _http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=error_to_http_status(e), detail=e.to_dict())


# ============================================================================
# Sharing
# ============================================================================


@router.post("/collections/{collection_id}/share", status_code=201)
async def share_collection(
    request: ShareCollectionRequest,
    collection_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    """
    Share a collection

    - **platform**: twitter, facebook, linkedin, email, link or iframe
    - **share_type**: public, private or temporary
    - **expires_at**: temporary shares only
    """
    try:
        collection = await service.get_collection(collection_id)
        user = await service.get_user(request.user_id) if request.user_id else None
        share = await service.share_collection(
            collection,
            user,
            request.platform,
            custom_url=request.custom_url,
            share_type=request.share_type,
            expires_at=request.expires_at,
        )
        return _present(service, share)
    except ServiceError as e:
        logger.error(f"❌ Failed to share collection {collection_id}: {e}")
        raise _http_error(e)


@router.post("/videos/{video_id}/share", status_code=201)
async def share_video(
    request: ShareCollectionRequest,
    video_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        if request.user_id is None:
            raise ValidationError("Video shares need a sharing user", field="user_id")
        video = await service.get_video(video_id)
        user = await service.get_user(request.user_id)
        share = await service.share_video(
            video,
            user,
            request.platform,
            custom_url=request.custom_url,
            share_type=request.share_type,
            expires_at=request.expires_at,
        )
        return _present(service, share)
    except ServiceError as e:
        logger.error(f"❌ Failed to share video {video_id}: {e}")
        raise _http_error(e)


@router.get("/collections/{collection_id}/shares")
async def collection_shares(
    collection_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    """Active shares of a collection"""
    try:
        collection = await service.get_collection(collection_id)
        shares = await service.active_shares(collection)
        return [_present(service, share) for share in shares]
    except ServiceError as e:
        raise _http_error(e)


@router.get("/collections/{collection_id}/embed")
async def embed_code(
    collection_id: int = Path(...),
    platform: SharePlatform = Query(SharePlatform.LINK),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        collection = await service.get_collection(collection_id)
        return {"embed_code": service.embed_code(collection, platform)}
    except ServiceError as e:
        raise _http_error(e)


# ============================================================================
# Tracking & Lifecycle
# ============================================================================


@router.post("/shares/{share_id}/analytics")
async def track_share(
    request: TrackShareRequest,
    share_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        share = await service.get_share(share_id)
        share = await service.track(share, request.metric)
        return _present(service, share)
    except ServiceError as e:
        raise _http_error(e)


@router.delete("/shares/{share_id}")
async def revoke_share(
    share_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        share = await service.get_share(share_id)
        return _present(service, await service.revoke(share))
    except ServiceError as e:
        raise _http_error(e)


# ============================================================================
# Analytics
# ============================================================================


@router.get("/collections/{collection_id}/shares/analytics")
async def collection_share_analytics(
    collection_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        collection = await service.get_collection(collection_id)
        return await service.collection_share_analytics(collection)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/users/{user_id}/shares/analytics")
async def user_share_analytics(
    user_id: int = Path(...),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        user = await service.get_user(user_id)
        return await service.user_share_analytics(user)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/shares/trending")
async def trending_shares(
    limit: int = Query(10, ge=1, le=50),
    service: SharingService = Depends(get_sharing_service),
):
    try:
        ranked = await service.trending_shares(limit)
        return [
            {**_present(service, item["share"]), "engagement_score": item["engagement_score"]}
            for item in ranked
        ]
    except ServiceError as e:
        raise _http_error(e)


@router.get("/shares/stats")
async def share_stats(service: SharingService = Depends(get_sharing_service)):
    try:
        return await service.share_statistics_summary()
    except ServiceError as e:
        raise _http_error(e)
