"""API error classes.

The core returns typed failures; these exceptions exist only at the HTTP
boundary, where the exception handlers in main.py turn them into the
standard error envelope.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for missing or malformed input and for rejected state transitions
    such as registering an email that already exists.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication failed (401).

    Use for wrong credentials and invalid or expired tokens.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class RateLimitedError(APIError):
    """OTP request or verification blocked by cooldown or lock (429).

    Args:
        message: User-facing explanation of the restriction.
        retry_after_seconds: Remaining lifetime of the blocking key, if known.
        details: Optional structured details (e.g., which restriction).
    """

    def __init__(
        self,
        message: str,
        retry_after_seconds: int | None = None,
        details: list[dict] | None = None,
    ) -> None:
        headers = None
        if retry_after_seconds is not None and retry_after_seconds > 0:
            headers = {"Retry-After": str(retry_after_seconds)}
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
            details=details,
            headers=headers,
        )


class ServiceUnavailableError(APIError):
    """A collaborator (key-value store, mail provider) failed (503)."""

    def __init__(
        self, message: str = "Service temporarily unavailable"
    ) -> None:
        super().__init__(
            code="SERVICE_UNAVAILABLE",
            message=message,
            status_code=503,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
