# curation/infrastructure/tasks/celery_app.py
"""
Celery Application Factory
Builds the worker/beat app that runs retention cleanup for the activity core
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from celery import Celery, Task
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue
from sqlalchemy.ext.asyncio import AsyncSession

from curation.app.config import CeleryConfig, get_config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MaintenanceTask(Task):
    """
    Base class for cleanup tasks

    Each run opens one session on the shared database manager and drives
    the async service code to completion on a fresh event loop.
    """

    _db = None

    @property
    def db(self):
        """Database manager (resolved on first use so workers import cheaply)"""
        if self._db is None:
            from curation.infrastructure.database import db_manager

            self._db = db_manager
        return self._db

    def run_in_session(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run `work(session)` to completion and return its result"""

        async def _run() -> T:
            async with self.db.session() as session:
                return await work(session)

        return asyncio.run(_run())


def _conf_from(settings: CeleryConfig) -> dict:
    return {
        "task_serializer": settings.task_serializer,
        "result_serializer": settings.result_serializer,
        "accept_content": settings.accept_content,
        "task_time_limit": settings.task_time_limit,
        "task_soft_time_limit": settings.task_soft_time_limit,
        "task_acks_late": settings.task_acks_late,
        "worker_prefetch_multiplier": settings.worker_prefetch_multiplier,
        "worker_hijack_root_logger": settings.worker_hijack_root_logger,
        "result_expires": settings.result_expires,
        "timezone": "UTC",
        "enable_utc": True,
        "task_default_queue": settings.task_default_queue,
        "beat_scheduler": settings.beat_scheduler,
        "beat_schedule_filename": settings.beat_schedule_filename,
    }


def create_celery_app(app_name: str = "curation") -> Celery:
    """Create the Celery app; every cleanup job runs on one direct-routed queue"""
    settings = get_config().celery

    app = Celery(
        app_name,
        broker=settings.broker_url,
        backend=settings.result_backend,
        task_cls=MaintenanceTask,
    )
    app.conf.update(_conf_from(settings))

    queue = settings.task_default_queue
    app.conf.task_queues = (
        Queue(queue, exchange=Exchange(queue, type="direct"), routing_key=queue),
    )

    logger.info(f"✅ Celery app initialized: {app_name} (queue: {queue})")
    logger.info(f"📡 Broker: {settings.broker_url}")
    return app


celery_app = create_celery_app()


# ============================================================================
# Signal Handlers
# ============================================================================


@task_prerun.connect
def log_task_start(sender=None, task_id=None, task=None, **extra: Any):
    logger.info(f"🚀 Task started: {task.name} [ID: {task_id}]")


@task_postrun.connect
def log_task_done(sender=None, task_id=None, task=None, retval=None, **extra: Any):
    logger.info(f"✅ Task completed: {task.name} [ID: {task_id}] -> {retval}")


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **extra: Any):
    logger.error(f"❌ Task failed: {sender.name} [ID: {task_id}]: {exception}")
