"""
Service Layer Exceptions
Typed error hierarchy shared by all services, with HTTP status mapping
"""

from typing import Any, Dict, Optional


# ============================================================================
# Base Exception
# ============================================================================


class ServiceError(Exception):
    """
    Base class for all service errors

    Attributes:
        message: Human readable message
        code: Stable machine readable error code
        details: Extra context for logging / API responses
    """

    code = "service_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API error responses"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Resource Errors
# ============================================================================


class ResourceNotFoundError(ServiceError):
    """Referenced entity, recipient or log entry does not exist"""

    code = "not_found"

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ResourceConflictError(ServiceError):
    """
    Concurrent write lost a race

    Raised internally by the aggregator and retried; never surfaced past
    the service that raised it.
    """

    code = "conflict"


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(ServiceError):
    """Input rejected before persistence"""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


class InvalidVisibilityError(ValidationError):
    code = "invalid_visibility"

    def __init__(self, value: Any):
        super().__init__(f"Unknown visibility: {value!r}", field="visibility", value=value)


class InvalidActionError(ValidationError):
    """Action or notification type tag outside the known enumeration"""

    code = "invalid_action"

    def __init__(self, value: Any, field: str = "action"):
        super().__init__(f"Unknown {field}: {value!r}", field=field, value=value)


class BusinessRuleViolationError(ServiceError):
    code = "business_rule_violation"


# ============================================================================
# Database Errors
# ============================================================================


class DatabaseError(ServiceError):
    code = "database_error"


class WriteFailureError(DatabaseError):
    """The store rejected a write; nothing was applied"""

    code = "write_failure"


# ============================================================================
# Permission Errors
# ============================================================================


class PermissionDeniedError(ServiceError):
    code = "permission_denied"


# ============================================================================
# Utility Functions
# ============================================================================


_STATUS_BY_TYPE = (
    (ResourceNotFoundError, 404),
    (ResourceConflictError, 409),
    (ValidationError, 422),
    (BusinessRuleViolationError, 400),
    (PermissionDeniedError, 403),
    (DatabaseError, 500),
)


def error_to_http_status(error: Exception) -> int:
    """Map a service error to the HTTP status the API layer returns"""
    for error_type, status in _STATUS_BY_TYPE:
        if isinstance(error, error_type):
            return status
    return 500
