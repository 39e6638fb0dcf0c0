"""
Notification API Router
REST endpoints for listing notifications and managing read state
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from curation.api.schemas import notification_to_response
from curation.app.dependencies import get_notification_service
from curation.app.models import Notification
from curation.services import NotificationService, ServiceError, error_to_http_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


async def _present(
    service: NotificationService, notifications: List[Notification]
) -> List[Dict[str, Any]]:
    summaries = await service.resolver.resolve_many(n.subject_ref for n in notifications)
    now = service.now()
    return [
        notification_to_response(n, now, subject=summaries.get(n.subject_ref))
        for n in notifications
    ]


def _http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=error_to_http_status(e), detail=e.to_dict())


@router.get("")
async def list_notifications(
    user_id: int = Query(..., description="Recipient"),
    type: Optional[str] = Query(None, pattern=r"^[a-zA-Z_-]+$"),
    read: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    service: NotificationService = Depends(get_notification_service),
):
    """
    Notifications for a user, newest first

    - **type**: filter by notification type
    - **read**: true for read only, false for unread only
    """
    try:
        notifications = await service.list_for_user(
            user_id, type=type, read=read, skip=skip, limit=limit
        )
        return await _present(service, notifications)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/unread-count")
async def unread_count(
    user_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    return {"unread_count": await service.unread_count(user_id)}


@router.patch("/mark-all-read")
async def mark_all_read(
    user_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        return {"marked_count": await service.mark_all_read(user_id)}
    except ServiceError as e:
        raise _http_error(e)


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int = Path(...),
    user_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        notification = await service.mark_read_by_id(notification_id, user_id)
        return (await _present(service, [notification]))[0]
    except ServiceError as e:
        raise _http_error(e)


@router.patch("/{notification_id}/unread")
async def mark_unread(
    notification_id: int = Path(...),
    user_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        notification = await service.mark_unread_by_id(notification_id, user_id)
        return (await _present(service, [notification]))[0]
    except ServiceError as e:
        raise _http_error(e)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int = Path(...),
    user_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        return {"deleted": await service.delete_for_user(notification_id, user_id)}
    except ServiceError as e:
        logger.error(f"❌ Failed to delete notification {notification_id}: {e}")
        raise _http_error(e)
