"""Cookie and header helpers for token transport.

Shared utilities used by the auth endpoints and dependencies:
- set_token_cookies / set_access_cookie: httpOnly cookies after login/refresh
- read_bearer_token: Authorization header fallback for non-browser clients
- cookie names per role (buyers and sellers use separate cookie pairs so a
  browser can hold both sessions at once)
"""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request, Response

from auth_service.core.config import settings


@dataclass(frozen=True)
class CookieNames:
    """Cookie names for one role's token pair."""

    access: str
    refresh: str


USER_COOKIES = CookieNames(access="access_token", refresh="refresh_token")
SELLER_COOKIES = CookieNames(
    access="seller_access_token", refresh="seller_refresh_token"
)

_BEARER_PREFIX = "bearer "


def _set_cookie(response: Response, key: str, value: str, max_age: timedelta) -> None:
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(max_age.total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def set_access_cookie(response: Response, token: str, names: CookieNames) -> None:
    """Set the httpOnly access-token cookie.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.
    """
    _set_cookie(
        response,
        names.access,
        token,
        timedelta(minutes=settings.access_token_ttl_minutes),
    )


def set_token_cookies(
    response: Response, access_token: str, refresh_token: str, names: CookieNames
) -> None:
    """Set both token cookies after a successful login."""
    set_access_cookie(response, access_token, names)
    _set_cookie(
        response,
        names.refresh,
        refresh_token,
        timedelta(days=settings.refresh_token_ttl_days),
    )


def read_bearer_token(request: Request) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    header = request.headers.get("authorization", "")
    if header.lower().startswith(_BEARER_PREFIX):
        token = header[len(_BEARER_PREFIX) :].strip()
        return token or None
    return None
