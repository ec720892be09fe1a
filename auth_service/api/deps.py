"""Shared dependencies for API endpoints.

Builds the auth core per request from process-wide collaborators:
- the key-value store created in main.lifespan (app.state.kv_store)
- the request-scoped database session
- cached token issuer, credential verifier and OTP policy built from settings

WHY DEPENDENCY INJECTION:
- Every collaborator is passed in explicitly (no module-level store client)
- Testable with app.dependency_overrides
"""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated, TypeVar

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.auth import SELLER_COOKIES, USER_COOKIES, read_bearer_token
from auth_service.core.config import settings
from auth_service.core.database import get_db
from auth_service.core.email import ResendMailSender
from auth_service.core.errors import (
    APIError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
    ValidationError,
)
from auth_service.core.kv_store import KeyValueStore
from auth_service.core.passwords import CredentialVerifier
from auth_service.repositories.user_repository import SqlAccountGateway
from auth_service.services.auth_flows import AuthFlows
from auth_service.services.otp_policy import OtpPolicy
from auth_service.services.outcomes import AuthFailure, Err, ErrorKind, Result
from auth_service.services.ports import Identity, MailSender
from auth_service.services.token_issuer import TokenIssuer

T = TypeVar("T")


# =============================================================================
# Failure -> HTTP error
# =============================================================================


def api_error_for(failure: AuthFailure) -> APIError:
    """Map a core failure onto the HTTP error hierarchy.

    VALIDATION -> 400, AUTHENTICATION -> 401, NOT_FOUND -> 404,
    RATE_LIMITED -> 429 (with Retry-After), OPERATIONAL -> 503.
    """
    details = [failure.details] if failure.details else None
    match failure.kind:
        case ErrorKind.VALIDATION:
            return ValidationError(failure.message, details=details)
        case ErrorKind.AUTHENTICATION:
            return UnauthorizedError(failure.message)
        case ErrorKind.NOT_FOUND:
            return NotFoundError(failure.message)
        case ErrorKind.RATE_LIMITED:
            return RateLimitedError(
                failure.message,
                retry_after_seconds=failure.details.get("retry_after_seconds"),
                details=details,
            )
        case ErrorKind.OPERATIONAL:
            return ServiceUnavailableError(failure.message)


def unwrap(result: Result[T]) -> T:
    """Return the Ok value or raise the matching APIError."""
    if isinstance(result, Err):
        raise api_error_for(result.failure)
    return result.value


# =============================================================================
# Collaborators
# =============================================================================


def get_kv_store(request: Request) -> KeyValueStore:
    """Key-value store opened in the application lifespan."""
    return request.app.state.kv_store


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Token issuer configured from settings.

    Raises:
        RuntimeError: If a signing secret is not configured.
    """
    access = settings.access_token_secret.get_secret_value()
    refresh = settings.refresh_token_secret.get_secret_value()
    if not access or not refresh:
        msg = "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be configured."
        raise RuntimeError(msg)
    return TokenIssuer(
        access_secret=access,
        refresh_secret=refresh,
        issuer=settings.auth_issuer,
        access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
    )


@lru_cache
def get_credential_verifier() -> CredentialVerifier:
    return CredentialVerifier(rounds=settings.bcrypt_rounds)


@lru_cache
def get_otp_policy() -> OtpPolicy:
    return OtpPolicy.from_settings(settings)


def get_mail_sender() -> MailSender:
    return ResendMailSender(
        api_key=settings.resend_api_key.get_secret_value(),
        from_address=settings.email_from,
    )


# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
KvStore = Annotated[KeyValueStore, Depends(get_kv_store)]


def get_auth_flows(
    db: DbSession,
    store: KvStore,
    mail: Annotated[MailSender, Depends(get_mail_sender)],
    tokens: Annotated[TokenIssuer, Depends(get_token_issuer)],
    credentials: Annotated[CredentialVerifier, Depends(get_credential_verifier)],
    policy: Annotated[OtpPolicy, Depends(get_otp_policy)],
) -> AuthFlows:
    """Assemble the auth flows for one request."""
    return AuthFlows(
        store=store,
        accounts=SqlAccountGateway(db),
        mail=mail,
        tokens=tokens,
        credentials=credentials,
        policy=policy,
    )


Flows = Annotated[AuthFlows, Depends(get_auth_flows)]


# =============================================================================
# Current identity
# =============================================================================


async def get_current_identity(request: Request, flows: Flows) -> Identity:
    """Resolve the caller from the access-token cookie or Bearer header.

    The buyer cookie is checked first, then the seller cookie, then the
    Authorization header.

    Raises:
        UnauthorizedError: Missing, invalid or expired token, or the
            account no longer exists.
    """
    token = (
        request.cookies.get(USER_COOKIES.access)
        or request.cookies.get(SELLER_COOKIES.access)
        or read_bearer_token(request)
    )
    return unwrap(await flows.current_identity(token))


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
