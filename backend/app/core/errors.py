"""Domain errors raised by chat services and mapped to HTTP responses."""

from __future__ import annotations

from fastapi import status


class ChatError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidRequestError(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class UnauthenticatedError(ChatError):
    """No valid session; clients should ask the user to log in."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class ForbiddenError(ChatError):
    """Authenticated actor lacks rights over the target entity."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed"


class NotFoundError(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class TransientIOError(ChatError):
    """Storage or blob-store call failed but may succeed on retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage temporarily unavailable"
