# ==============================================================================
# errors.py - Exception classes for the course portal
# ==============================================================================

"""
Exception classes raised by the workflow and gate modules.

Each class carries the HTTP status it maps to; ``main.py`` registers a single
handler that turns any ``PortalError`` into a ``{"error": message}`` response.
"""

from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base exception class for all portal-specific errors"""

    status_code: int = 500
    default_code: str = "PORTAL_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

        logger.debug(f"Exception raised: {self.__class__.__name__} - {message}",
                     extra={"error_code": self.error_code, "details": self.details})


class AuthenticationError(PortalError):
    """Raised when a token is missing, malformed, expired or badly signed"""

    status_code = 401
    default_code = "UNAUTHENTICATED"


class AuthorizationError(PortalError):
    """Raised when a valid identity lacks the permission or ownership required"""

    status_code = 403
    default_code = "FORBIDDEN"


class ValidationError(PortalError):
    """Raised when a payload is incomplete, malformed or reuses a unique value"""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(PortalError):
    """Raised when a referenced id does not resolve"""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any = None):
        message = f"{entity} not found"
        super().__init__(message, f"{entity.upper().replace(' ', '_')}_NOT_FOUND", {"identifier": identifier})


class ConflictError(PortalError):
    """Raised on a duplicate submission, grade or enrollment"""

    status_code = 409
    default_code = "CONFLICT"


class DatabaseUnavailableError(PortalError):
    """Raised when no database connection is configured or reachable"""

    status_code = 503
    default_code = "DATABASE_UNAVAILABLE"

    def __init__(self, message: str = "Database unavailable"):
        super().__init__(message)


def log_exception(exc: Exception, context: str = None, extra_data: Dict[str, Any] = None) -> None:
    """
    Log an exception with additional context and data.

    Args:
        exc: The exception to log
        context: Where the exception occurred (e.g. the request path)
        extra_data: Additional data to include in the log
    """
    extra_info = {
        "exception_type": exc.__class__.__name__,
        "exception_message": str(exc),
    }
    if extra_data:
        extra_info.update(extra_data)
    if isinstance(exc, PortalError):
        extra_info["error_code"] = exc.error_code
        extra_info["exception_details"] = exc.details

    log_message = f"Exception occurred: {exc.__class__.__name__}"
    if context:
        log_message += f" in {context}"
    log_message += f" - {str(exc)}"

    logger.error(log_message, extra=extra_info, exc_info=exc)
