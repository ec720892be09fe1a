"""Registration, login, refresh and password-reset orchestration.

Each flow is a short sequence over the rate gate, OTP engine, account
gateway, credential verifier and token issuer:

    start_registration     -> gate check -> gate record -> issue OTP
    complete_registration  -> verify OTP -> create identity
    login                  -> find identity -> compare password -> token pair
    refresh                -> rotate refresh token
    start_password_reset   -> find identity -> gate check -> gate record -> issue OTP
    verify_password_reset  -> verify OTP -> write reset grant
    reset_password         -> reuse check -> consume reset grant -> update password
    current_identity       -> verify access token -> find identity

Every flow returns Ok or Err(AuthFailure). Denied/Failed/Locked/Expired
outcomes are terminal for the attempt; nothing is retried here.
StoreUnavailableError is not caught: it means the service cannot decide.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from auth_service.core.email import (
    RESET_SUBJECT,
    SELLER_ACTIVATION_TEMPLATE,
    SELLER_PASSWORD_RESET_TEMPLATE,
    USER_ACTIVATION_TEMPLATE,
    USER_PASSWORD_RESET_TEMPLATE,
    VERIFY_SUBJECT,
    MailDeliveryError,
)
from auth_service.core.kv_store import KeyValueStore
from auth_service.core.passwords import CredentialVerifier
from auth_service.services.otp_engine import (
    OtpEngine,
    OtpVerification,
    VerificationStatus,
)
from auth_service.services.otp_policy import (
    OtpPolicy,
    describe_duration,
    lock_key,
    reset_grant_key,
)
from auth_service.services.outcomes import Err, ErrorKind, Ok, Result, fail
from auth_service.services.ports import (
    AccountGateway,
    DuplicateAccountError,
    Identity,
    MailSender,
    Role,
)
from auth_service.services.rate_gate import RateGate
from auth_service.services.token_issuer import (
    TokenIssuer,
    TokenKind,
    TokenPair,
    TokenStatus,
)
from auth_service.services.validation import (
    check_registration_data,
    mask_email,
    require_fields,
)

logger = structlog.get_logger()

_ACTIVATION_TEMPLATES = {
    Role.USER: USER_ACTIVATION_TEMPLATE,
    Role.SELLER: SELLER_ACTIVATION_TEMPLATE,
}
_RESET_TEMPLATES = {
    Role.USER: USER_PASSWORD_RESET_TEMPLATE,
    Role.SELLER: SELLER_PASSWORD_RESET_TEMPLATE,
}
_ACCOUNT_LABELS = {Role.USER: "User", Role.SELLER: "Seller"}

# Same message for unknown email, wrong role and wrong password
_INVALID_CREDENTIALS_MSG = "Invalid email or password"
_MAIL_FAILED_MSG = "Failed to send OTP email. Please try again."


@dataclass(frozen=True)
class LoginResult:
    """Identity and the token pair issued for it."""

    identity: Identity
    tokens: TokenPair


class AuthFlows:
    """OTP-gated account flows.

    Args:
        store: Ephemeral key-value store.
        accounts: Account gateway.
        mail: Outbound mail sender.
        tokens: Token issuer.
        credentials: Password hasher/verifier.
        policy: OTP timing policy.
        otp_engine: Optional pre-built engine (tests inject a fixed code).
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        accounts: AccountGateway,
        mail: MailSender,
        tokens: TokenIssuer,
        credentials: CredentialVerifier,
        policy: OtpPolicy | None = None,
        otp_engine: OtpEngine | None = None,
    ) -> None:
        self._store = store
        self._accounts = accounts
        self._tokens = tokens
        self._credentials = credentials
        self._policy = policy or OtpPolicy()
        self._gate = RateGate(store, self._policy)
        self._otp = otp_engine or OtpEngine(store, mail, self._policy)

    # =========================================================================
    # Registration
    # =========================================================================

    async def start_registration(
        self, data: Mapping[str, Any], role: Role = Role.USER
    ) -> Result[None]:
        """Validate registration data and email a verification code.

        Args:
            data: name, email, password (and phone_number, country for sellers).
            role: Account role being registered.

        Returns:
            Ok(None) once the OTP has been sent.
        """
        invalid = check_registration_data(data, role)
        if invalid is not None:
            return invalid

        email = str(data["email"])
        if await self._accounts.find_by_email(email) is not None:
            return fail(
                ErrorKind.VALIDATION,
                f"{_ACCOUNT_LABELS[role]} already exists with this email!",
            )

        return await self._send_otp(
            email,
            str(data["name"]),
            _ACTIVATION_TEMPLATES[role],
            VERIFY_SUBJECT,
        )

    async def complete_registration(
        self, data: Mapping[str, Any], role: Role = Role.USER
    ) -> Result[Identity]:
        """Verify the registration OTP and create the identity.

        Args:
            data: Registration fields plus ``otp``.
            role: Account role being registered.

        Returns:
            Ok(created identity).
        """
        invalid = check_registration_data(data, role)
        if invalid is not None:
            return invalid
        missing_otp = require_fields("All fields are required", data.get("otp"))
        if missing_otp is not None:
            return missing_otp

        email = str(data["email"])
        if await self._accounts.find_by_email(email) is not None:
            return fail(
                ErrorKind.VALIDATION,
                f"{_ACCOUNT_LABELS[role]} already exists with this email!",
            )

        verification = await self._otp.verify(email, str(data["otp"]))
        if not verification.verified:
            return await self._verification_failure(email, verification)

        try:
            identity = await self._accounts.create(
                name=str(data["name"]),
                email=email,
                password_hash=self._credentials.hash_password(str(data["password"])),
                role=role,
                phone_number=data.get("phone_number") if role is Role.SELLER else None,
                country=data.get("country") if role is Role.SELLER else None,
            )
        except DuplicateAccountError:
            return fail(
                ErrorKind.VALIDATION,
                f"{_ACCOUNT_LABELS[role]} already exists with this email!",
            )

        logger.info(
            "account_registered",
            address=mask_email(email),
            role=role.value,
            account_id=str(identity.id),
        )
        return Ok(identity)

    # =========================================================================
    # Login / tokens
    # =========================================================================

    async def login(
        self, email: str | None, password: str | None, role: Role = Role.USER
    ) -> Result[LoginResult]:
        """Check credentials and issue an access/refresh token pair.

        Unknown email, role mismatch and wrong password share one message
        so the response does not reveal which emails are registered.
        """
        missing = require_fields("Email and password are required!", email, password)
        if missing is not None:
            return missing

        identity = await self._accounts.find_by_email(str(email))
        if identity is None or identity.role is not role:
            self._credentials.burn_comparison(str(password))
            return fail(ErrorKind.AUTHENTICATION, _INVALID_CREDENTIALS_MSG)

        if not self._credentials.password_matches(str(password), identity.password_hash):
            logger.info("login_failed", address=mask_email(str(email)))
            return fail(ErrorKind.AUTHENTICATION, _INVALID_CREDENTIALS_MSG)

        tokens = self._tokens.issue_pair(str(identity.id), identity.role)
        logger.info("login_succeeded", account_id=str(identity.id), role=identity.role.value)
        return Ok(LoginResult(identity=identity, tokens=tokens))

    async def refresh(self, refresh_token: str | None) -> Result[str]:
        """Exchange a refresh token for a new access token."""
        if not refresh_token:
            return fail(ErrorKind.AUTHENTICATION, "Unauthorized! No refresh token")
        return await self._tokens.rotate(refresh_token, self._accounts)

    async def current_identity(self, access_token: str | None) -> Result[Identity]:
        """Resolve the identity behind an access token."""
        if not access_token:
            return fail(ErrorKind.AUTHENTICATION, "Unauthorized! Token missing.")

        verification = self._tokens.verify(access_token, TokenKind.ACCESS)
        if verification.status is TokenStatus.EXPIRED:
            return fail(ErrorKind.AUTHENTICATION, "Unauthorized! Token expired.")
        if verification.claims is None:
            return fail(ErrorKind.AUTHENTICATION, "Unauthorized! Invalid token.")

        identity = await self._accounts.find_by_id(verification.claims.subject_id)
        if identity is None:
            return fail(ErrorKind.AUTHENTICATION, "Account not found")
        return Ok(identity)

    # =========================================================================
    # Password reset
    # =========================================================================

    async def start_password_reset(
        self, email: str | None, role: Role = Role.USER
    ) -> Result[None]:
        """Email a password-reset code to an existing account."""
        missing = require_fields("Email is required!", email)
        if missing is not None:
            return missing

        identity = await self._accounts.find_by_email(str(email))
        if identity is None or identity.role is not role:
            return fail(ErrorKind.NOT_FOUND, f"{_ACCOUNT_LABELS[role]} not found!")

        return await self._send_otp(
            identity.email,
            identity.name,
            _RESET_TEMPLATES[role],
            RESET_SUBJECT,
        )

    async def verify_password_reset(
        self, email: str | None, otp: str | None
    ) -> Result[None]:
        """Verify a reset code and grant a time-limited password reset."""
        missing = require_fields("Email and OTP are required!", email, otp)
        if missing is not None:
            return missing

        address = str(email)
        verification = await self._otp.verify(address, str(otp))
        if not verification.verified:
            return await self._verification_failure(address, verification)

        await self._store.set(reset_grant_key(address), "granted", self._policy.reset_grant)
        logger.info("password_reset_granted", address=mask_email(address))
        return Ok(None)

    async def reset_password(
        self, email: str | None, new_password: str | None
    ) -> Result[None]:
        """Replace the password of an account holding a reset grant.

        The grant is checked before the password comparison, so callers
        without a verified code learn nothing about the current password.
        The reuse check runs before anything in the store is touched.
        """
        missing = require_fields(
            "Email and new password are required!", email, new_password
        )
        if missing is not None:
            return missing

        address = str(email)
        identity = await self._accounts.find_by_email(address)
        if identity is None:
            return fail(ErrorKind.NOT_FOUND, "User not found!")

        if await self._store.get(reset_grant_key(address)) is None:
            return fail(
                ErrorKind.AUTHENTICATION,
                "Password reset not authorized. Please verify the OTP first.",
            )

        if self._credentials.password_matches(str(new_password), identity.password_hash):
            return fail(
                ErrorKind.VALIDATION, "New password cannot be same as old password!"
            )

        await self._accounts.update_password(
            address, self._credentials.hash_password(str(new_password))
        )
        await self._store.delete(reset_grant_key(address))
        logger.info("password_reset_completed", account_id=str(identity.id))
        return Ok(None)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _send_otp(
        self, address: str, display_name: str, template_id: str, subject: str
    ) -> Result[None]:
        decision = await self._gate.check_request_allowed(address)
        if not decision.allowed:
            return Err(decision.to_failure())

        decision = await self._gate.record_request(address)
        if not decision.allowed:
            return Err(decision.to_failure())

        try:
            await self._otp.issue(address, display_name, template_id, subject)
        except MailDeliveryError:
            logger.warning("otp_mail_failed", address=mask_email(address))
            return fail(ErrorKind.OPERATIONAL, _MAIL_FAILED_MSG)
        return Ok(None)

    async def _verification_failure(
        self, address: str, verification: OtpVerification
    ) -> Err:
        if verification.status is VerificationStatus.LOCKED:
            return fail(
                ErrorKind.RATE_LIMITED,
                "Too many failed attempts. Your account is locked for "
                f"{describe_duration(self._policy.lock)}.",
                reason="account_locked",
                retry_after_seconds=await self._store.ttl(lock_key(address))
                or self._policy.lock,
            )
        if verification.status is VerificationStatus.FAILED:
            return fail(
                ErrorKind.VALIDATION,
                f"Incorrect OTP! You have {verification.attempts_remaining} "
                "attempts left.",
                attempts_remaining=verification.attempts_remaining,
            )
        return fail(
            ErrorKind.VALIDATION, "Invalid or expired OTP! Please request a new one."
        )
