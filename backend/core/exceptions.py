"""Domain errors raised by services and rendered by the API layer.

Every error carries a human-readable ``message`` and optional ``details``;
``backend.main`` turns them into ``{"success": false, "message": ..., "details": ...}``.
"""

from typing import Any

from fastapi import status


class AppError(Exception):
    """Base class for errors with a known HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {'success': False, 'message': self.message}
        if self.details is not None:
            payload['details'] = self.details
        return payload


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientFundsError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    """Missing or invalid caller identity, or a bad webhook signature."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    """Overlapping booking, disallowed transition or a stale concurrent write."""

    status_code = status.HTTP_409_CONFLICT


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ProviderUnavailableError(AppError):
    """The meeting provider could not be reached or refused the request."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
