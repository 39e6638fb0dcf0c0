"""
Activity Feed API Router
REST endpoints for activity feeds and recording activity
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from curation.api.schemas import RecordActivityRequest, activity_to_response
from curation.app.dependencies import get_activity_service
from curation.app.models import ActivityLog
from curation.domain.models import FeedPeriod, SubjectRef
from curation.services import ActivityService, ServiceError, error_to_http_status
from curation.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity-feed", tags=["Activity Feed"])


async def _present(
    service: ActivityService, entries: List[ActivityLog]
) -> List[Dict[str, Any]]:
    """Resolve subjects in one pass and shape each entry"""
    summaries = await service.resolver.resolve_many(e.subject_ref for e in entries)
    now = service.now()
    return [
        activity_to_response(entry, now, subject=summaries.get(entry.subject_ref))
        for entry in entries
    ]


def _http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=error_to_http_status(e), detail=e.to_dict())


# ============================================================================
# Feeds
# ============================================================================


@router.get("/personalized")
async def personalized_feed(
    viewer_id: int = Query(..., description="Viewing user"),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    """Entries from followed users, public entries and entries targeting the viewer"""
    try:
        entries = await service.personalized_feed(viewer_id, skip=skip, limit=limit)
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/global")
async def global_feed(
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    try:
        entries = await service.global_feed(skip=skip, limit=limit)
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/user/{user_id}")
async def user_feed(
    user_id: int = Path(...),
    viewer_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    try:
        entries = await service.user_activities(user_id, viewer_id, skip=skip, limit=limit)
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/users/{username}")
async def public_user_feed(
    username: str = Path(...),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    """Public entries of a user looked up by username"""
    try:
        entries = await service.public_user_activities(username, skip=skip, limit=limit)
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/targeted")
async def targeted_feed(
    viewer_id: int = Query(...),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    try:
        entries = await service.targeted_activities(viewer_id, skip=skip, limit=limit)
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/filtered")
async def filtered_feed(
    viewer_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, pattern=r"^[a-zA-Z._-]+$"),
    subject_type: Optional[str] = Query(None, pattern=r"^[a-z_]+$"),
    actor_id: Optional[int] = Query(None),
    period: FeedPeriod = Query(FeedPeriod.ALL),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: ActivityService = Depends(get_activity_service),
):
    """
    Visible entries narrowed by filters

    - **action**: e.g. collection.liked
    - **subject_type**: collection, video, comment or user
    - **period**: hour, day, week, month, year or all
    """
    try:
        entries = await service.filtered_activities(
            viewer_id=viewer_id,
            action=action,
            subject_type=subject_type,
            actor_id=actor_id,
            period=period,
            skip=skip,
            limit=limit,
        )
        return await _present(service, entries)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/stats/{user_id}")
async def activity_stats(
    user_id: int = Path(...),
    service: ActivityService = Depends(get_activity_service),
):
    try:
        return await service.user_activity_stats(user_id)
    except ServiceError as e:
        raise _http_error(e)


# ============================================================================
# Entries
# ============================================================================


@router.get("/entries/{entry_id}")
async def get_entry(
    entry_id: int = Path(...),
    viewer_id: Optional[int] = Query(None),
    service: ActivityService = Depends(get_activity_service),
):
    try:
        entry = await service.get_entry(entry_id, viewer_id)
        return (await _present(service, [entry]))[0]
    except ServiceError as e:
        raise _http_error(e)


@router.post("/entries", status_code=201)
async def record_activity(
    request: RecordActivityRequest,
    service: ActivityService = Depends(get_activity_service),
):
    """Record an action, folding it into a recent matching entry if any"""
    try:
        ref = SubjectRef.parse(request.subject_type, request.subject_id)
        if ref is None:
            raise ValidationError(
                f"Unknown subject type: {request.subject_type!r}", field="subject_type"
            )
        actor = (
            await service.require_user(request.actor_id)
            if request.actor_id is not None
            else None
        )
        entry = await service.record(
            actor,
            request.action,
            ref,
            target_user_id=request.target_user_id,
            properties=request.properties,
            visibility=request.visibility,
            aggregation_key=request.aggregation_key,
        )
        return (await _present(service, [entry]))[0]
    except ServiceError as e:
        logger.error(f"❌ Failed to record activity: {e}")
        raise _http_error(e)
