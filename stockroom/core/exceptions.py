"""
Custom exception classes for the application.
"""

from typing import Any, Dict, Optional

# Postgres error codes surfaced by the hosted database
UNIQUE_VIOLATION = "23505"
INVALID_TEXT_REPRESENTATION = "22P02"
UNDEFINED_TABLE = "42P01"


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class DatabaseException(AppException):
    """Database operation exception."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        pgcode: Optional[str] = None
    ):
        self.pgcode = pgcode
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            status_code=500,
            details=details
        )

class AuthenticationException(AppException):
    """Authentication error exception."""

    def __init__(self, message: str = "Unauthorized: Please log in"):
        super().__init__(
            message=message,
            error_code="AUTHENTICATION_ERROR",
            status_code=401
        )

class AuthorizationException(AppException):
    """Authorization error exception."""

    def __init__(self, message: str = "Unauthorized: Admin access required"):
        super().__init__(
            message=message,
            error_code="AUTHORIZATION_ERROR",
            status_code=403
        )


class ConflictException(AppException):
    """Resource conflict exception."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "CONFLICT"
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
            details=details
        )

class ValidationException(AppException):
    """Exception raised for validation errors."""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details or {}
        )

class NotFoundException(AppException):
    """Exception raised when a resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


def pgcode_of(exc: BaseException) -> Optional[str]:
    """Return the Postgres error code carried by a driver or wrapped exception."""
    code = getattr(exc, "pgcode", None)
    if code:
        return code
    cause = exc.__cause__
    return getattr(cause, "pgcode", None) if cause is not None else None
