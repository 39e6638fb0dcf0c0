"""
Scheduled Background Tasks
Retention cleanup for activity entries, notifications and expired shares
"""

import logging
from typing import Any, Dict, Optional

from celery.schedules import crontab

from curation.app.config import get_config
from curation.infrastructure.tasks.celery_app import celery_app
from curation.services import ActivityService, NotificationService, SharingService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="tasks.scheduled.cleanup_old_activities")
def cleanup_old_activities(self, days: Optional[int] = None) -> Dict[str, Any]:
    """
    Delete activity entries past the retention period

    Args:
        days: Override ACTIVITY_RETENTION_DAYS for this run

    Returns:
        Number of deleted entries
    """
    logger.info("🧹 Cleaning up old activity entries...")
    deleted = self.run_in_session(
        lambda session: ActivityService(session).cleanup_old_activities(days)
    )
    return {"activities_deleted": deleted}


@celery_app.task(bind=True, name="tasks.scheduled.cleanup_old_notifications")
def cleanup_old_notifications(self, days: Optional[int] = None) -> Dict[str, Any]:
    logger.info("🧹 Cleaning up old notifications...")
    deleted = self.run_in_session(
        lambda session: NotificationService(session).delete_old_notifications(days)
    )
    return {"notifications_deleted": deleted}


@celery_app.task(bind=True, name="tasks.scheduled.cleanup_expired_shares")
def cleanup_expired_shares(self) -> Dict[str, Any]:
    """Delete shares whose expiry has passed"""
    logger.info("🧹 Cleaning up expired shares...")
    deleted = self.run_in_session(
        lambda session: SharingService(session).cleanup_expired_shares()
    )
    return {"shares_deleted": deleted}


# ============================================================================
# Beat Schedule
# ============================================================================


def build_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """Daily retention runs at CELERY_CLEANUP_HOUR; share expiry runs hourly"""
    settings = get_config().celery
    hour = settings.cleanup_hour

    return {
        "cleanup-old-activities": {
            "task": "tasks.scheduled.cleanup_old_activities",
            "schedule": crontab(hour=hour, minute=0),
        },
        "cleanup-old-notifications": {
            "task": "tasks.scheduled.cleanup_old_notifications",
            "schedule": crontab(hour=hour, minute=30),
        },
        "cleanup-expired-shares": {
            "task": "tasks.scheduled.cleanup_expired_shares",
            "schedule": crontab(minute=settings.share_cleanup_minute),
        },
    }


celery_app.conf.beat_schedule = build_beat_schedule()
