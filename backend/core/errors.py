"""Domain errors raised by the scheduling core.

Route handlers translate them into ``HTTPException`` with
``to_http_exception`` so the core never depends on the web layer's status
handling.
"""

from fastapi import HTTPException, status


class DomainError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainError):
    """Collision, double booking or a closed cancellation window."""
    status_code = status.HTTP_409_CONFLICT
