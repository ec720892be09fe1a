"""Authentication endpoints: OTP registration, login, refresh, password reset.

Buyer (``user``) and seller accounts share the same flows; seller routes
differ only in the role they pass and the cookie names they set.

Security considerations:
- OTP issuance is gated per address by cooldown, spam lock and account lock
  (429 with Retry-After); slowapi adds a coarse per-IP limit on top
- login: same message for unknown email and wrong password, with a dummy
  bcrypt comparison so response time does not reveal registered emails
- tokens travel in httpOnly cookies; a Bearer header is accepted as well
"""

from typing import Any

from fastapi import APIRouter, Request, Response
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from auth_service.api.deps import CurrentIdentity, Flows, unwrap
from auth_service.core.auth import (
    SELLER_COOKIES,
    USER_COOKIES,
    CookieNames,
    read_bearer_token,
    set_access_cookie,
    set_token_cookies,
)
from auth_service.core.config import settings
from auth_service.core.rate_limiting import limiter
from auth_service.core.responses import DataResponse, MessageData
from auth_service.services.auth_flows import AuthFlows
from auth_service.services.ports import Identity, Role

router = APIRouter()

_OTP_SENT_MSG = "OTP sent to email. Please verify your account."


# ===================================================================
# Request / response models
# ===================================================================
# Fields are optional here: presence and format are checked by the auth
# core so clients get its messages ("All fields are required", ...).


class UserRegistrationRequest(BaseModel):
    """Request body for POST /auth/user-registration."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=128)


class SellerRegistrationRequest(UserRegistrationRequest):
    """Request body for POST /auth/seller-registration."""

    phone_number: str | None = Field(None, max_length=50)
    country: str | None = Field(None, max_length=100)


class VerifyUserRequest(UserRegistrationRequest):
    """Request body for POST /auth/verify-user."""

    otp: str | None = Field(None, max_length=6)


class VerifySellerRequest(SellerRegistrationRequest):
    """Request body for POST /auth/verify-seller."""

    otp: str | None = Field(None, max_length=6)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login-user and /auth/login-seller."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(None, max_length=255)
    password: str | None = Field(None, max_length=128)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot-password-user."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(None, max_length=255)


class VerifyForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/verify-forgot-password-user."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(None, max_length=255)
    otp: str | None = Field(None, max_length=6)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password-user."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(None, max_length=255)
    new_password: str | None = Field(
        None,
        max_length=128,
        validation_alias=AliasChoices("new_password", "newPassword"),
    )


class IdentityRead(BaseModel):
    """Public view of an account (never includes the password hash)."""

    id: str
    name: str
    email: str
    role: str
    phone_number: str | None = None
    country: str | None = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityRead":
        return cls(
            id=str(identity.id),
            name=identity.name,
            email=identity.email,
            role=identity.role.value,
            phone_number=identity.phone_number,
            country=identity.country,
        )


class LoginData(BaseModel):
    message: str
    user: IdentityRead


class RefreshData(BaseModel):
    message: str
    access_token: str


# ===================================================================
# Shared handlers
# ===================================================================


async def _start_registration(
    flows: AuthFlows, body: BaseModel, role: Role
) -> DataResponse[MessageData]:
    unwrap(await flows.start_registration(body.model_dump(), role))
    return DataResponse(data=MessageData(message=_OTP_SENT_MSG))


async def _complete_registration(
    flows: AuthFlows, body: BaseModel, role: Role
) -> DataResponse[IdentityRead]:
    data: dict[str, Any] = body.model_dump()
    identity = unwrap(await flows.complete_registration(data, role))
    return DataResponse(data=IdentityRead.from_identity(identity))


async def _login(
    flows: AuthFlows,
    body: LoginRequest,
    response: Response,
    role: Role,
    cookies: CookieNames,
) -> DataResponse[LoginData]:
    result = unwrap(await flows.login(body.email, body.password, role))
    set_token_cookies(
        response,
        result.tokens.access_token,
        result.tokens.refresh_token,
        cookies,
    )
    return DataResponse(
        data=LoginData(
            message="Login successful!",
            user=IdentityRead.from_identity(result.identity),
        )
    )


# ===================================================================
# Buyer registration and login
# ===================================================================


@router.post("/user-registration")
@limiter.limit(lambda: settings.rate_limit_auth)
async def user_registration(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: UserRegistrationRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Validate registration data and email a verification code."""
    return await _start_registration(flows, body, Role.USER)


@router.post("/verify-user", status_code=201)
@limiter.limit(lambda: settings.rate_limit_auth)
async def verify_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyUserRequest,
    flows: Flows,
) -> DataResponse[IdentityRead]:
    """Verify the registration code and create the account."""
    return await _complete_registration(flows, body, Role.USER)


@router.post("/login-user")
@limiter.limit(lambda: settings.rate_limit_auth)
async def login_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    flows: Flows,
) -> DataResponse[LoginData]:
    """Check credentials and set access/refresh cookies."""
    return await _login(flows, body, response, Role.USER, USER_COOKIES)


# ===================================================================
# Tokens
# ===================================================================


@router.post("/refresh-token")
@limiter.limit(lambda: settings.rate_limit_auth)
async def refresh_token(
    request: Request,
    response: Response,
    flows: Flows,
) -> DataResponse[RefreshData]:
    """Exchange a refresh token for a new access token.

    The refresh token is read from the buyer cookie, then the seller
    cookie, then the Authorization header. The new access token is set in
    the matching cookie and also returned in the body.
    """
    cookies = USER_COOKIES
    token = request.cookies.get(USER_COOKIES.refresh)
    if not token:
        token = request.cookies.get(SELLER_COOKIES.refresh)
        if token:
            cookies = SELLER_COOKIES
    if not token:
        token = read_bearer_token(request)

    access_token = unwrap(await flows.refresh(token))
    set_access_cookie(response, access_token, cookies)
    return DataResponse(
        data=RefreshData(message="Access token refreshed", access_token=access_token)
    )


@router.get("/logged-in-user")
async def logged_in_user(identity: CurrentIdentity) -> DataResponse[IdentityRead]:
    """Return the account behind the current access token."""
    return DataResponse(data=IdentityRead.from_identity(identity))


# ===================================================================
# Password reset
# ===================================================================


@router.post("/forgot-password-user")
@limiter.limit(lambda: settings.rate_limit_auth)
async def forgot_password_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ForgotPasswordRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Email a password-reset code to a buyer account."""
    unwrap(await flows.start_password_reset(body.email, Role.USER))
    return DataResponse(data=MessageData(message=_OTP_SENT_MSG))


@router.post("/forgot-password-seller")
@limiter.limit(lambda: settings.rate_limit_auth)
async def forgot_password_seller(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ForgotPasswordRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Email a password-reset code to a seller account."""
    unwrap(await flows.start_password_reset(body.email, Role.SELLER))
    return DataResponse(data=MessageData(message=_OTP_SENT_MSG))


@router.post("/verify-forgot-password-user")
@limiter.limit(lambda: settings.rate_limit_auth)
async def verify_forgot_password_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyForgotPasswordRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Verify a reset code; the password may then be reset for 10 minutes."""
    unwrap(await flows.verify_password_reset(body.email, body.otp))
    return DataResponse(
        data=MessageData(message="OTP verified. You can now reset your password.")
    )


@router.post("/reset-password-user")
@limiter.limit(lambda: settings.rate_limit_auth)
async def reset_password_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Set a new password after a verified reset code."""
    unwrap(await flows.reset_password(body.email, body.new_password))
    return DataResponse(data=MessageData(message="Password reset successfully!"))


# ===================================================================
# Seller registration and login
# ===================================================================


@router.post("/seller-registration")
@limiter.limit(lambda: settings.rate_limit_auth)
async def seller_registration(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SellerRegistrationRequest,
    flows: Flows,
) -> DataResponse[MessageData]:
    """Validate seller registration data and email a verification code."""
    return await _start_registration(flows, body, Role.SELLER)


@router.post("/verify-seller", status_code=201)
@limiter.limit(lambda: settings.rate_limit_auth)
async def verify_seller(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifySellerRequest,
    flows: Flows,
) -> DataResponse[IdentityRead]:
    """Verify the registration code and create the seller account."""
    return await _complete_registration(flows, body, Role.SELLER)


@router.post("/login-seller")
@limiter.limit(lambda: settings.rate_limit_auth)
async def login_seller(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    flows: Flows,
) -> DataResponse[LoginData]:
    """Check seller credentials and set seller access/refresh cookies."""
    return await _login(flows, body, response, Role.SELLER, SELLER_COOKIES)
