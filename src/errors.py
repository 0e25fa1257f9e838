"""Service-layer error types shared by the HTTP and CLI surfaces."""

from __future__ import annotations


class ServiceError(RuntimeError):
    """Base class for errors raised by application services."""

    status_code = 500


class ValidationFailedError(ServiceError, ValueError):
    """Raised when request input is well-formed but not acceptable."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Raised when credentials or bearer tokens are missing or invalid."""

    status_code = 401


class PermissionDeniedError(ServiceError):
    """Raised when the caller may not perform the requested action."""

    status_code = 403


class NotFoundError(ServiceError):
    """Raised when a referenced entity does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Raised when a uniqueness constraint would be violated."""

    status_code = 409


class QuotaExceededError(ServiceError):
    """Raised when a user has no review quota left."""

    status_code = 429


class ReviewFailedError(ServiceError):
    """Raised when the review pipeline fails after the review was recorded."""

    status_code = 500
