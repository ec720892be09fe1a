"""Tests for the registration, login, refresh and password-reset flows."""

import pytest

from auth_service.core.email import (
    RESET_SUBJECT,
    SELLER_ACTIVATION_TEMPLATE,
    USER_ACTIVATION_TEMPLATE,
    USER_PASSWORD_RESET_TEMPLATE,
)
from auth_service.core.passwords import CredentialVerifier
from auth_service.services.auth_flows import AuthFlows
from auth_service.services.otp_policy import (
    cooldown_key,
    lock_key,
    otp_key,
    request_count_key,
    reset_grant_key,
    spam_lock_key,
)
from auth_service.services.outcomes import Err, ErrorKind, Ok
from auth_service.services.ports import Identity, Role
from auth_service.services.token_issuer import TokenIssuer, TokenKind
from tests.conftest import (
    TEST_CODE,
    TEST_PASSWORD,
    FakeClock,
    FakeKeyValueStore,
    InMemoryAccountGateway,
    RecordingMailSender,
)

_NEW_PASSWORD = "BrandNewP@ss2"  # nosec B105  # gitleaks:allow


def _registration(**overrides) -> dict:
    data = {"name": "Carol", "email": "carol@example.com", "password": TEST_PASSWORD}
    data.update(overrides)
    return data


def _seller_registration(**overrides) -> dict:
    data = _registration(
        name="Carol's Crafts", phone_number="+15550123", country="DE"
    )
    data.update(overrides)
    return data


def _assert_failure(result, kind: ErrorKind, message: str | None = None) -> None:
    assert isinstance(result, Err)
    assert result.failure.kind is kind
    if message is not None:
        assert result.failure.message == message


# =============================================================================
# Registration
# =============================================================================


class TestStartRegistration:
    """Tests for AuthFlows.start_registration()."""

    async def test_sends_activation_code(
        self, flows: AuthFlows, mail: RecordingMailSender, kv_store: FakeKeyValueStore
    ):
        """Valid data sends the activation mail and records the request."""
        result = await flows.start_registration(_registration())

        assert isinstance(result, Ok)
        assert [m.template_id for m in mail.sent] == [USER_ACTIVATION_TEMPLATE]
        assert mail.sent[0].variables == {"name": "Carol", "otp": TEST_CODE}
        assert await kv_store.get(otp_key("carol@example.com")) == TEST_CODE
        assert await kv_store.get(request_count_key("carol@example.com")) == "1"

    async def test_seller_uses_seller_template(
        self, flows: AuthFlows, mail: RecordingMailSender
    ):
        """Seller registration uses the seller activation template."""
        result = await flows.start_registration(_seller_registration(), Role.SELLER)

        assert isinstance(result, Ok)
        assert mail.sent[0].template_id == SELLER_ACTIVATION_TEMPLATE

    @pytest.mark.parametrize("missing", ["name", "email", "password"])
    async def test_missing_field(self, flows: AuthFlows, missing: str):
        """Every field is required."""
        result = await flows.start_registration(_registration(**{missing: ""}))

        _assert_failure(result, ErrorKind.VALIDATION, "All fields are required")

    @pytest.mark.parametrize("missing", ["phone_number", "country"])
    async def test_seller_missing_contact_field(self, flows: AuthFlows, missing: str):
        """Sellers must also give a phone number and country."""
        result = await flows.start_registration(
            _seller_registration(**{missing: None}), Role.SELLER
        )

        _assert_failure(result, ErrorKind.VALIDATION, "All fields are required")

    @pytest.mark.parametrize("email", ["carol", "carol@example", "car ol@example.com"])
    async def test_invalid_email(
        self, flows: AuthFlows, mail: RecordingMailSender, email: str
    ):
        """Malformed emails are rejected before any mail is sent."""
        result = await flows.start_registration(_registration(email=email))

        _assert_failure(result, ErrorKind.VALIDATION, "Invalid email format!")
        assert mail.sent == []

    async def test_existing_email(
        self, flows: AuthFlows, existing_user: Identity, mail: RecordingMailSender
    ):
        """An email that is already registered is rejected."""
        result = await flows.start_registration(
            _registration(email=existing_user.email)
        )

        _assert_failure(
            result, ErrorKind.VALIDATION, "User already exists with this email!"
        )
        assert mail.sent == []

    async def test_email_is_case_sensitive(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """Emails differing only in case are different addresses."""
        result = await flows.start_registration(
            _registration(email=existing_user.email.upper())
        )

        assert isinstance(result, Ok)

    async def test_cooldown_blocks_second_request(
        self, flows: AuthFlows, mail: RecordingMailSender
    ):
        """A second request within a minute is rate limited."""
        await flows.start_registration(_registration())

        result = await flows.start_registration(_registration())

        _assert_failure(
            result,
            ErrorKind.RATE_LIMITED,
            "You must wait at least 1 minute before requesting another OTP.",
        )
        assert result.failure.details["retry_after_seconds"] == 60
        assert len(mail.sent) == 1

    async def test_third_request_in_hour_engages_spam_lock(
        self,
        flows: AuthFlows,
        clock: FakeClock,
        kv_store: FakeKeyValueStore,
        mail: RecordingMailSender,
    ):
        """Two requests are served; the third in the hour sets the spam lock."""
        assert isinstance(await flows.start_registration(_registration()), Ok)
        clock.advance(61)
        assert isinstance(await flows.start_registration(_registration()), Ok)
        clock.advance(61)

        third = await flows.start_registration(_registration())

        _assert_failure(
            third,
            ErrorKind.RATE_LIMITED,
            "Too many OTP requests. Please wait 1 hour before requesting again.",
        )
        assert await kv_store.get(spam_lock_key("carol@example.com")) == "locked"
        assert len(mail.sent) == 2

        clock.advance(61)
        fourth = await flows.start_registration(_registration())
        _assert_failure(fourth, ErrorKind.RATE_LIMITED)
        assert fourth.failure.details["reason"] == "spam_locked"

    async def test_mail_failure_is_operational(
        self, flows: AuthFlows, mail: RecordingMailSender, kv_store: FakeKeyValueStore
    ):
        """Delivery failure surfaces as OPERATIONAL and leaves no OTP."""
        mail.fail = True

        result = await flows.start_registration(_registration())

        _assert_failure(result, ErrorKind.OPERATIONAL)
        assert await kv_store.get(otp_key("carol@example.com")) is None
        assert await kv_store.get(cooldown_key("carol@example.com")) is None


class TestCompleteRegistration:
    """Tests for AuthFlows.complete_registration()."""

    async def test_correct_code_creates_identity(
        self,
        flows: AuthFlows,
        accounts: InMemoryAccountGateway,
        credentials: CredentialVerifier,
    ):
        """The verified account is created with a hashed password."""
        await flows.start_registration(_registration())

        result = await flows.complete_registration(_registration(otp=TEST_CODE))

        assert isinstance(result, Ok)
        identity = result.value
        assert identity.email == "carol@example.com"
        assert identity.role is Role.USER
        assert identity.password_hash != TEST_PASSWORD
        assert credentials.password_matches(TEST_PASSWORD, identity.password_hash)
        assert await accounts.find_by_email("carol@example.com") == identity

    async def test_seller_keeps_contact_details(self, flows: AuthFlows):
        """Seller accounts store phone number and country."""
        await flows.start_registration(_seller_registration(), Role.SELLER)

        result = await flows.complete_registration(
            _seller_registration(otp=TEST_CODE), Role.SELLER
        )

        assert isinstance(result, Ok)
        assert result.value.role is Role.SELLER
        assert result.value.phone_number == "+15550123"
        assert result.value.country == "DE"

    async def test_missing_otp(self, flows: AuthFlows):
        """The code is required."""
        result = await flows.complete_registration(_registration())

        _assert_failure(result, ErrorKind.VALIDATION, "All fields are required")

    async def test_wrong_code_reports_attempts_left(
        self, flows: AuthFlows, accounts: InMemoryAccountGateway
    ):
        """A wrong code creates nothing and reports remaining attempts."""
        await flows.start_registration(_registration())

        result = await flows.complete_registration(_registration(otp="654321"))

        _assert_failure(
            result, ErrorKind.VALIDATION, "Incorrect OTP! You have 1 attempts left."
        )
        assert result.failure.details == {"attempts_remaining": 1}
        assert accounts.accounts == {}

    async def test_third_wrong_code_locks(
        self, flows: AuthFlows, kv_store: FakeKeyValueStore
    ):
        """The third wrong code locks the address for 30 minutes."""
        await flows.start_registration(_registration())
        await flows.complete_registration(_registration(otp="654321"))
        await flows.complete_registration(_registration(otp="111111"))

        result = await flows.complete_registration(_registration(otp="222222"))

        _assert_failure(
            result,
            ErrorKind.RATE_LIMITED,
            "Too many failed attempts. Your account is locked for 30 minutes.",
        )
        assert result.failure.details["retry_after_seconds"] == 1800
        assert await kv_store.get(lock_key("carol@example.com")) == "locked"

    async def test_lock_blocks_new_otp_requests(
        self, flows: AuthFlows, clock: FakeClock
    ):
        """After a lock, even a new OTP request is refused."""
        await flows.start_registration(_registration())
        for code in ("654321", "111111", "222222"):
            await flows.complete_registration(_registration(otp=code))
        clock.advance(120)

        result = await flows.start_registration(_registration())

        _assert_failure(
            result,
            ErrorKind.RATE_LIMITED,
            "Account locked due to multiple failed attempts! "
            "Try again after 30 minutes.",
        )

    async def test_expired_code(self, flows: AuthFlows, clock: FakeClock):
        """A code older than two minutes is reported as invalid or expired."""
        await flows.start_registration(_registration())
        clock.advance(121)

        result = await flows.complete_registration(_registration(otp=TEST_CODE))

        _assert_failure(
            result,
            ErrorKind.VALIDATION,
            "Invalid or expired OTP! Please request a new one.",
        )

    async def test_email_registered_meanwhile(
        self, flows: AuthFlows, accounts: InMemoryAccountGateway
    ):
        """If the email got registered after the OTP was sent, reject."""
        await flows.start_registration(_registration())
        await accounts.create(
            name="Other", email="carol@example.com", password_hash="x"
        )

        result = await flows.complete_registration(_registration(otp=TEST_CODE))

        _assert_failure(
            result, ErrorKind.VALIDATION, "User already exists with this email!"
        )


# =============================================================================
# Login / tokens
# =============================================================================


class TestLogin:
    """Tests for AuthFlows.login()."""

    async def test_valid_credentials_issue_token_pair(
        self, flows: AuthFlows, existing_user: Identity, token_issuer: TokenIssuer
    ):
        """Correct credentials return the identity and both tokens."""
        result = await flows.login(existing_user.email, TEST_PASSWORD)

        assert isinstance(result, Ok)
        assert result.value.identity == existing_user
        access = token_issuer.verify(result.value.tokens.access_token, TokenKind.ACCESS)
        refresh = token_issuer.verify(
            result.value.tokens.refresh_token, TokenKind.REFRESH
        )
        assert access.claims is not None
        assert access.claims.subject_id == str(existing_user.id)
        assert access.claims.role is Role.USER
        assert refresh.claims is not None

    async def test_wrong_password(self, flows: AuthFlows, existing_user: Identity):
        """A wrong password is an authentication failure."""
        result = await flows.login(existing_user.email, "WrongP@ss9")

        _assert_failure(result, ErrorKind.AUTHENTICATION, "Invalid email or password")

    async def test_unknown_email_burns_a_comparison(
        self, flows: AuthFlows, credentials: CredentialVerifier
    ):
        """Unknown emails get the same message after a dummy comparison."""
        result = await flows.login("nobody@example.com", TEST_PASSWORD)

        _assert_failure(result, ErrorKind.AUTHENTICATION, "Invalid email or password")

    async def test_role_must_match_endpoint(
        self, flows: AuthFlows, existing_seller: Identity
    ):
        """A seller cannot log in as a buyer."""
        result = await flows.login(existing_seller.email, TEST_PASSWORD, Role.USER)

        _assert_failure(result, ErrorKind.AUTHENTICATION)

    async def test_seller_login(
        self, flows: AuthFlows, existing_seller: Identity, token_issuer: TokenIssuer
    ):
        """Sellers receive seller-role tokens."""
        result = await flows.login(existing_seller.email, TEST_PASSWORD, Role.SELLER)

        assert isinstance(result, Ok)
        claims = token_issuer.verify(
            result.value.tokens.access_token, TokenKind.ACCESS
        ).claims
        assert claims is not None
        assert claims.role is Role.SELLER

    async def test_missing_fields(self, flows: AuthFlows):
        """Email and password are both required."""
        result = await flows.login("alice@example.com", None)

        _assert_failure(
            result, ErrorKind.VALIDATION, "Email and password are required!"
        )


class TestRefreshAndCurrentIdentity:
    """Tests for AuthFlows.refresh() and AuthFlows.current_identity()."""

    async def test_refresh_issues_access_token(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """A login refresh token can be exchanged for a new access token."""
        login = await flows.login(existing_user.email, TEST_PASSWORD)
        assert isinstance(login, Ok)

        result = await flows.refresh(login.value.tokens.refresh_token)

        assert isinstance(result, Ok)
        identity = await flows.current_identity(result.value)
        assert isinstance(identity, Ok)
        assert identity.value.id == existing_user.id

    async def test_refresh_without_token(self, flows: AuthFlows):
        """A missing refresh token is an authentication failure."""
        result = await flows.refresh(None)

        _assert_failure(
            result, ErrorKind.AUTHENTICATION, "Unauthorized! No refresh token"
        )

    async def test_current_identity_with_expired_token(
        self, flows: AuthFlows, existing_user: Identity, clock: FakeClock
    ):
        """Access tokens stop working after 15 minutes."""
        login = await flows.login(existing_user.email, TEST_PASSWORD)
        assert isinstance(login, Ok)
        clock.advance(15 * 60)

        result = await flows.current_identity(login.value.tokens.access_token)

        _assert_failure(result, ErrorKind.AUTHENTICATION, "Unauthorized! Token expired.")

    async def test_current_identity_with_deleted_account(
        self,
        flows: AuthFlows,
        existing_user: Identity,
        accounts: InMemoryAccountGateway,
    ):
        """A valid token for a removed account is rejected."""
        login = await flows.login(existing_user.email, TEST_PASSWORD)
        assert isinstance(login, Ok)
        del accounts.accounts[existing_user.email]

        result = await flows.current_identity(login.value.tokens.access_token)

        _assert_failure(result, ErrorKind.AUTHENTICATION)

    async def test_current_identity_without_token(self, flows: AuthFlows):
        """No token, no identity."""
        result = await flows.current_identity("")

        _assert_failure(result, ErrorKind.AUTHENTICATION, "Unauthorized! Token missing.")

    async def test_current_identity_rejects_refresh_token(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """Refresh tokens are not accepted where an access token is expected."""
        login = await flows.login(existing_user.email, TEST_PASSWORD)
        assert isinstance(login, Ok)

        result = await flows.current_identity(login.value.tokens.refresh_token)

        _assert_failure(result, ErrorKind.AUTHENTICATION, "Unauthorized! Invalid token.")


# =============================================================================
# Password reset
# =============================================================================


class TestPasswordReset:
    """Tests for the forgot-password, verify and reset flows."""

    async def test_full_reset(
        self,
        flows: AuthFlows,
        existing_user: Identity,
        mail: RecordingMailSender,
        kv_store: FakeKeyValueStore,
    ):
        """Request, verify, reset; the new password then logs in."""
        started = await flows.start_password_reset(existing_user.email)
        assert isinstance(started, Ok)
        assert mail.sent[0].template_id == USER_PASSWORD_RESET_TEMPLATE
        assert mail.sent[0].subject == RESET_SUBJECT
        assert mail.sent[0].variables["name"] == "Alice"

        verified = await flows.verify_password_reset(existing_user.email, TEST_CODE)
        assert isinstance(verified, Ok)
        assert await kv_store.ttl(reset_grant_key(existing_user.email)) == 600

        reset = await flows.reset_password(existing_user.email, _NEW_PASSWORD)
        assert isinstance(reset, Ok)
        assert await kv_store.get(reset_grant_key(existing_user.email)) is None

        assert isinstance(await flows.login(existing_user.email, _NEW_PASSWORD), Ok)
        _assert_failure(
            await flows.login(existing_user.email, TEST_PASSWORD),
            ErrorKind.AUTHENTICATION,
        )

    async def test_unknown_email(self, flows: AuthFlows, mail: RecordingMailSender):
        """Reset for an unknown email is NOT_FOUND and sends nothing."""
        result = await flows.start_password_reset("nobody@example.com")

        _assert_failure(result, ErrorKind.NOT_FOUND, "User not found!")
        assert mail.sent == []

    async def test_missing_email(self, flows: AuthFlows):
        """Email is required."""
        result = await flows.start_password_reset("  ")

        _assert_failure(result, ErrorKind.VALIDATION, "Email is required!")

    async def test_reset_request_respects_cooldown(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """Reset OTPs share the per-address cooldown."""
        await flows.start_password_reset(existing_user.email)

        result = await flows.start_password_reset(existing_user.email)

        _assert_failure(result, ErrorKind.RATE_LIMITED)

    async def test_verify_requires_email_and_otp(self, flows: AuthFlows):
        """Both fields are required to verify."""
        result = await flows.verify_password_reset("alice@example.com", None)

        _assert_failure(result, ErrorKind.VALIDATION, "Email and OTP are required!")

    async def test_wrong_reset_code(self, flows: AuthFlows, existing_user: Identity):
        """A wrong reset code grants nothing."""
        await flows.start_password_reset(existing_user.email)

        result = await flows.verify_password_reset(existing_user.email, "000000")

        _assert_failure(result, ErrorKind.VALIDATION)
        reset = await flows.reset_password(existing_user.email, _NEW_PASSWORD)
        _assert_failure(reset, ErrorKind.AUTHENTICATION)

    async def test_reset_without_verification(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """A reset without a verified code is refused."""
        result = await flows.reset_password(existing_user.email, _NEW_PASSWORD)

        _assert_failure(
            result,
            ErrorKind.AUTHENTICATION,
            "Password reset not authorized. Please verify the OTP first.",
        )

    async def test_current_password_not_revealed_without_grant(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """Without a grant, the current and a wrong password fail alike."""
        current = await flows.reset_password(existing_user.email, TEST_PASSWORD)
        guess = await flows.reset_password(existing_user.email, "Guess123!")

        assert isinstance(current, Err)
        assert isinstance(guess, Err)
        assert current.failure == guess.failure
        assert current.failure.kind is ErrorKind.AUTHENTICATION

    async def test_same_password_rejected_before_store_mutation(
        self,
        flows: AuthFlows,
        existing_user: Identity,
        kv_store: FakeKeyValueStore,
        accounts: InMemoryAccountGateway,
    ):
        """Reusing the current password fails and leaves everything untouched."""
        await flows.start_password_reset(existing_user.email)
        await flows.verify_password_reset(existing_user.email, TEST_CODE)
        keys_before = kv_store.keys()

        result = await flows.reset_password(existing_user.email, TEST_PASSWORD)

        _assert_failure(
            result,
            ErrorKind.VALIDATION,
            "New password cannot be same as old password!",
        )
        assert kv_store.keys() == keys_before
        assert accounts.accounts[existing_user.email] == existing_user

    async def test_reset_unknown_email(self, flows: AuthFlows):
        """Reset for an unknown email is NOT_FOUND."""
        result = await flows.reset_password("nobody@example.com", _NEW_PASSWORD)

        _assert_failure(result, ErrorKind.NOT_FOUND, "User not found!")

    async def test_reset_requires_fields(self, flows: AuthFlows):
        """Email and new password are required."""
        result = await flows.reset_password("alice@example.com", "")

        _assert_failure(
            result, ErrorKind.VALIDATION, "Email and new password are required!"
        )

    async def test_grant_is_single_use(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """A grant allows exactly one reset."""
        await flows.start_password_reset(existing_user.email)
        await flows.verify_password_reset(existing_user.email, TEST_CODE)
        await flows.reset_password(existing_user.email, _NEW_PASSWORD)

        again = await flows.reset_password(existing_user.email, "ThirdP@ss3")

        _assert_failure(again, ErrorKind.AUTHENTICATION)

    async def test_grant_expires(
        self, flows: AuthFlows, existing_user: Identity, clock: FakeClock
    ):
        """The grant lapses after 10 minutes."""
        await flows.start_password_reset(existing_user.email)
        await flows.verify_password_reset(existing_user.email, TEST_CODE)
        clock.advance(600)

        result = await flows.reset_password(existing_user.email, _NEW_PASSWORD)

        _assert_failure(result, ErrorKind.AUTHENTICATION)

    async def test_seller_reset_requires_seller_account(
        self, flows: AuthFlows, existing_user: Identity
    ):
        """The seller reset flow does not serve buyer accounts."""
        result = await flows.start_password_reset(existing_user.email, Role.SELLER)

        _assert_failure(result, ErrorKind.NOT_FOUND, "Seller not found!")
