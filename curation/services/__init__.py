"""
Services Package
Business logic for activity feeds, notifications and collection sharing
"""

from .base_service import BaseService
from .subject_resolver import SubjectResolver
from .visibility import VisibilityFilter, is_visible, visible_to, visibility_clause
from .activity_service import ActivityService, RequestContext
from .notification_service import NotificationService
from .sharing_service import SharingService
from .event_service import EventService, EventOutcome
from .exceptions import (
    # Base
    ServiceError,

    # Resource Errors
    ResourceNotFoundError,
    ResourceConflictError,

    # Validation Errors
    ValidationError,
    InvalidVisibilityError,
    InvalidActionError,
    BusinessRuleViolationError,

    # Database Errors
    DatabaseError,
    WriteFailureError,

    # Permission Errors
    PermissionDeniedError,

    # Utility Functions
    error_to_http_status,
)

__all__ = [
    # Base Classes
    "BaseService",

    # Services
    "SubjectResolver",
    "VisibilityFilter",
    "ActivityService",
    "NotificationService",
    "SharingService",
    "EventService",
    "EventOutcome",
    "RequestContext",

    # Visibility rule
    "is_visible",
    "visible_to",
    "visibility_clause",

    # Exceptions
    "ServiceError",
    "ResourceNotFoundError",
    "ResourceConflictError",
    "ValidationError",
    "InvalidVisibilityError",
    "InvalidActionError",
    "BusinessRuleViolationError",
    "DatabaseError",
    "WriteFailureError",
    "PermissionDeniedError",

    # Utility Functions
    "error_to_http_status",
]
