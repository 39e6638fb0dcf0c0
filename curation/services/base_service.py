"""
Base Service
Shared logging, validation and error translation for service classes
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from curation.app.config import Config, get_config
from curation.domain.interfaces import Clock
from curation.services.exceptions import (
    ServiceError,
    WriteFailureError,
)


class BaseService(ABC):
    """
    Base class for all services

    Provides:
    - Per-service logger
    - Injected configuration and clock
    - Required-field validation
    - Translation of storage errors into service errors
    """

    def __init__(self, config: Optional[Config] = None, clock: Optional[Clock] = None):
        self.config = config or get_config()
        self.clock: Clock = clock or datetime.utcnow
        self.logger = logging.getLogger(
            f"curation.services.{self.get_service_name()}"
        )

    @abstractmethod
    def get_service_name(self) -> str:
        """Short service name used for logging"""

    def now(self) -> datetime:
        return self.clock()

    # ========================================================================
    # Logging Helpers
    # ========================================================================

    def log_info(self, message: str, **context: Any) -> None:
        self.logger.info(self._format(message, context))

    def log_debug(self, message: str, **context: Any) -> None:
        self.logger.debug(self._format(message, context))

    def log_warning(self, message: str, **context: Any) -> None:
        self.logger.warning(self._format(message, context))

    def log_error(
        self, message: str, error: Optional[Exception] = None, **context: Any
    ) -> None:
        if error is not None:
            context["error"] = str(error)
        self.logger.error(self._format(message, context))

    @staticmethod
    def _format(message: str, context: dict) -> str:
        if not context:
            return message
        extras = ", ".join(f"{k}={v}" for k, v in context.items())
        return f"{message} ({extras})"

    # ========================================================================
    # Error Handling
    # ========================================================================

    def handle_error(self, error: Exception, operation: str) -> ServiceError:
        """
        Convert an unexpected exception into a service error

        Args:
            error: Raised exception
            operation: What was being attempted (for the log line)

        Returns:
            ServiceError to raise
        """
        if isinstance(error, ServiceError):
            return error

        self.log_error(f"❌ {operation} failed", error=error)
        if isinstance(error, SQLAlchemyError):
            return WriteFailureError(
                f"{operation} failed: storage rejected the write",
                details={"operation": operation},
            )
        return ServiceError(f"{operation} failed: {error}")
