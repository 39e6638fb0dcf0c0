"""
API Routers
"""

from .activity_router import router as activity_router
from .notification_router import router as notification_router
from .share_router import router as share_router

__all__ = ["activity_router", "notification_router", "share_router"]
