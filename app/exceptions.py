from typing import Any

from fastapi import status


class AppError(Exception):
    """Base for every error that maps onto an `{error, details}` JSON body."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal Server Error"

    def __init__(
        self,
        error: str | None = None,
        details: Any = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.error = error or self.error
        self.details = details
        self.headers = headers
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.error)

    def to_body(self) -> dict:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation error"


class NotFoundOrNotOwned(AppError):
    # Rows owned by someone else are reported exactly like missing rows
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class UpstreamFailure(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error = "Upstream service failed"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Too Many Requests"


class InternalError(AppError):
    pass
