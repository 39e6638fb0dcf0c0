"""
Background Tasks Package
Celery-based maintenance tasks
"""

from curation.infrastructure.tasks.celery_app import celery_app, create_celery_app

# Import task modules to register them
from curation.infrastructure.tasks import scheduled_tasks

__all__ = [
    "celery_app",
    "create_celery_app",
    "scheduled_tasks",
]
