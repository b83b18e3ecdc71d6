"""
Domain errors
- Raised by business code, rendered to HTTP by the handlers in main.py
"""
from typing import Optional

from fastapi import status


class AcademyError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(AcademyError):
    """Missing, invalid or expired bearer token. The message never says which."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired session"


class AuthorizationError(AcademyError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class ValidationError(AcademyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundError(AcademyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AcademyError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class StorageError(AcademyError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage failure"
