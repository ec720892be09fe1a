"""Rate limiting configuration using slowapi.

Security: a coarse per-IP guard in front of the auth endpoints. The OTP
cooldown, spam lock and account lock in the key-value store remain the
authoritative per-address limits; this limiter only blunts floods from a
single client.

Usage in routers:
    from auth_service.core.rate_limiting import limiter

    @router.post("/login-user")
    @limiter.limit(lambda: settings.rate_limit_auth)
    async def login_user(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from auth_service.core.config import settings

# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Window length of the exceeded limit, e.g. 60 for "10 per 1 minute"
    retry_after = str(exc.limit.limit.get_expiry())

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
