"""Response envelope models.

Consistent response format for all API endpoints: successes are wrapped in
{"data": ...}, errors in {"error": {...}}.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    Usage:
        @router.get("/logged-in-user")
        async def logged_in_user(...) -> DataResponse[IdentityRead]:
            return DataResponse(data=IdentityRead.from_identity(identity))
    """

    data: T


class MessageData(BaseModel):
    """Payload for endpoints that only report what happened."""

    message: str


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "RATE_LIMITED").
        message: Human-readable error message.
        details: Optional structured details (field errors, retry hints).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail
