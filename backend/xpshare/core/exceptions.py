"""Custom exception classes for the application.

Each exception carries the HTTP status it maps to at the API boundary; the
handlers registered in ``xpshare.main`` render them as ``{error, details}``.
"""

from typing import Optional


class XPShareException(Exception):
    """Base exception for all XPShare errors."""

    status_code: int = 500

    def __init__(self, message: str = "An unexpected error occurred", details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class ValidationError(XPShareException):
    """Raised when input violates a business rule."""

    status_code = 400


class AuthenticationError(XPShareException):
    """Raised when the request carries no valid access token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class PermissionDeniedError(XPShareException):
    """Raised when an authenticated user lacks admin rights."""

    status_code = 403

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class NotFoundError(XPShareException):
    """Raised when a requested resource is not found (or belongs to someone else)."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found", f"{resource} with identifier '{identifier}' not found")


class ConflictError(XPShareException):
    """Raised on uniqueness conflicts and illegal state transitions."""

    status_code = 409


class UpstreamError(XPShareException):
    """Raised when an external collaborator (query understanding) fails."""

    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} request failed", message)
