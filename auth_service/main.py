"""FastAPI application entry point.

REST API with versioned routing and consistent error handling.

This module creates and configures the FastAPI application, including:
- Lifespan that opens and closes the Redis-backed key-value store
- Exception handlers for API errors and an unreachable store
- API v1 router mounting
- Health and readiness endpoints
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from auth_service.api.deps import KvStore
from auth_service.api.v1.router import router as v1_router
from auth_service.core.config import settings
from auth_service.core.database import create_tables
from auth_service.core.errors import APIError, InternalError, ServiceUnavailableError
from auth_service.core.kv_store import RedisKeyValueStore, StoreUnavailableError
from auth_service.core.rate_limiting import limiter, rate_limit_exceeded_handler
from auth_service.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Prevents caching of tokens and account data
    - Content-Security-Policy: Restricts resource loading (API returns no HTML)
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Auth responses carry tokens and account data
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope, status code and any extra headers
        (e.g., Retry-After for 429).
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
        headers=exc.headers,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's validation errors to our standard format.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def store_unavailable_handler(
    request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    """Report an unreachable key-value store as 503.

    Without the store no OTP, cooldown or lock decision can be made, so
    the request fails outright rather than proceeding unchecked.
    """
    logger.error("kv_store_unavailable", error=str(exc), path=str(request.url.path))

    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error=ErrorDetail(
                code="SERVICE_UNAVAILABLE",
                message="Service temporarily unavailable",
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return api_error_handler(request, InternalError())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the key-value store at startup and close it at shutdown.

    Also configures stdlib logging and, unless disabled, creates missing
    tables.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.database_create_tables:
        await create_tables()

    store = RedisKeyValueStore.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
    )
    app.state.kv_store = store
    logger.info("kv_store_opened", environment=settings.environment)
    try:
        yield
    finally:
        await store.close()
        logger.info("kv_store_closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    WHY FACTORY FUNCTION:
    - Enables testing with different configurations
    - Clear separation between app creation and startup

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Storefront Auth API",
        version="1.0.0",
        description="OTP-gated registration, password reset and token issuance",
        lifespan=lifespan,
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Coarse per-IP guard in front of the OTP state machine
    app.state.limiter = limiter

    # Include v1 router at /api/v1
    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    @app.get("/health/ready")
    async def readiness_check(store: KvStore) -> dict:
        """Readiness check: the key-value store must answer.

        Returns 503 when it does not, since no OTP decision can be made.
        """
        if not await store.ping():
            raise ServiceUnavailableError()
        return {"status": "ready"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn auth_service.main:app
app = create_app()
