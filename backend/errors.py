# errors.py — Error taxonomy for the search & activity engine
#   ForumError            base, carries the HTTP status the API layer renders
#   SearchValidationError malformed search parameters (raised before any query)
#   PermissionDeniedError caller lacks a capability
#   NotFoundError         referenced user / role does not exist
#   StoreError            any failure reported by the database layer

from fastapi import status


class ForumError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "forum_error"

    def __init__(self, detail: str = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class SearchValidationError(ForumError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid search parameters"


class PermissionDeniedError(ForumError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Access denied"


class NotFoundError(ForumError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class StoreError(ForumError):
    """Wraps a database failure. The underlying exception is kept as __cause__."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"
