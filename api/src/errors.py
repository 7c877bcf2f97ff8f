"""
Application error taxonomy and the JSON error envelope.

Every failure that reaches the HTTP boundary is rendered as::

    {"error": "<summary>", "details": "<safe message>"}

Errors carry their HTTP status so exception handlers in ``main`` do not need
to inspect error types.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog
from fastapi import status

logger = structlog.get_logger(__name__)


# ============================================================================
# Error Types
# ============================================================================

class AppError(Exception):
    """Base class for errors rendered into the error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    category: str = "Internal error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    """Missing or malformed client input."""

    status_code = status.HTTP_400_BAD_REQUEST
    category = "Invalid request"


class AuthError(AppError):
    """Missing, expired or invalid credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    category = "Authentication failed"


class PermissionDeniedError(AppError):
    """Authenticated caller lacks the permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN
    category = "Permission denied"


class NotFoundError(AppError):
    """Referenced record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    category = "Not found"


class StoreError(AppError):
    """The record store failed to complete an operation."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    category = "Storage error"


class OperationFailed(AppError):
    """A route operation failed for a reason other than client input."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    category = "Internal error"

    def __init__(self, message: str, cause: BaseException):
        super().__init__(message)
        self.__cause__ = cause


CLIENT_ERRORS = (ValidationError, AuthError, PermissionDeniedError, NotFoundError)


@contextmanager
def failure_as(message: str, **context: Any) -> Iterator[None]:
    """
    Re-raise unexpected failures inside the block as ``OperationFailed``.

    Client errors pass through untouched so their own status survives.

    Example:
        with failure_as("Failed to fetch customers"):
            return await repo.get_all()
    """
    try:
        yield
    except CLIENT_ERRORS:
        raise
    except Exception as e:
        logger.error("operation_failed", error=message, cause=str(e), **context)
        raise OperationFailed(message, e) from e


# ============================================================================
# Envelope
# ============================================================================

def safe_details(exc: BaseException, production: bool) -> str:
    """
    Render an exception into a message that is safe to return to clients.

    In production only the error category is exposed; elsewhere the
    exception message is returned to ease debugging.
    """
    if isinstance(exc, AppError):
        if exc.details is not None:
            return exc.details
        if production:
            return exc.category
        cause = exc.__cause__
        if isinstance(exc, OperationFailed) and cause is not None:
            return str(cause) or cause.__class__.__name__
        return exc.message
    if production:
        return AppError.category
    return str(exc) or exc.__class__.__name__


def error_body(error: str, details: Optional[str] = None) -> Dict[str, Any]:
    """Build the error envelope, omitting ``details`` when there is none."""
    body: Dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return body
