"""
Application error taxonomy.

Services raise these; the exception handlers registered in main.py turn
them into JSON responses. Everything except InternalError is an expected
condition the caller can correct, so message and details are returned as-is.
InternalError wraps storage failures and is answered with an opaque 500.
"""

import os
from typing import Any, Dict, Optional

from fastapi import status

APP_ENV = os.getenv("APP_ENV", "production").lower()


class AppError(Exception):
    """Base class for errors raised by the service layer."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppError):
    """A test, attempt, question or tag does not exist."""

    def __init__(self, resource: str = "Resource", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{resource} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details=details,
        )


class UnauthorizedError(AppError):
    """The caller is unidentified, or is not the owner of the attempt."""

    def __init__(
        self,
        message: str = "Attempt does not belong to caller",
        status_code: int = status.HTTP_403_FORBIDDEN,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="UNAUTHORIZED",
            details=details,
        )


class ConflictError(AppError):
    """Duplicate active attempt, or a mutation against a finalized attempt."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, attempt=None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            details=details,
        )
        # The conflicting attempt, returned to the caller for reference
        self.attempt = attempt


class InvalidInputError(AppError):
    """Malformed request value; details name the offending field."""

    def __init__(self, field: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Invalid {field}: {reason}",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="INVALID_INPUT",
            details={"field": field, "reason": reason, **(details or {})},
        )


class InternalError(AppError):
    """Storage or other unexpected failure. Never exposes its cause in production."""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_ERROR",
            details=details,
        )


def expose_internal_details() -> bool:
    return APP_ENV == "development"
