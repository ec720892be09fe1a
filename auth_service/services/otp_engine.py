"""One-time code issuance and verification.

Issue: generate a 6-digit code, deliver it, then record the code and the
re-issue cooldown together. Delivery happens first; if it fails, no state
is written and the caller may retry immediately.

Verify: compare the submitted code with the stored one, counting failures
inside a short window and locking the address once the window fills.
A successful verification consumes the code and clears the failure count.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from auth_service.core.email import VERIFY_SUBJECT
from auth_service.core.kv_store import KeyValueStore
from auth_service.services.otp_policy import (
    OtpPolicy,
    cooldown_key,
    failed_attempts_key,
    lock_key,
    otp_key,
)
from auth_service.services.ports import MailSender
from auth_service.services.validation import mask_email

logger = structlog.get_logger()

_CODE_MIN = 100_000
_CODE_SPAN = 900_000


def generate_code() -> str:
    """Return a uniformly random 6-digit code in [100000, 999999]."""
    return str(secrets.randbelow(_CODE_SPAN) + _CODE_MIN)


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    FAILED = "failed"
    LOCKED = "locked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class OtpVerification:
    """Outcome of OtpEngine.verify().

    Attributes:
        status: VERIFIED, FAILED, LOCKED or EXPIRED.
        attempts_remaining: Wrong codes left before the lock (FAILED only).
    """

    status: VerificationStatus
    attempts_remaining: int | None = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


class OtpEngine:
    """Issues and verifies one-time codes for an address.

    Args:
        store: Ephemeral key-value store.
        mail: Outbound mail sender.
        policy: OTP timing policy.
        code_generator: Source of codes. Tests inject a fixed code.
    """

    def __init__(
        self,
        store: KeyValueStore,
        mail: MailSender,
        policy: OtpPolicy,
        code_generator: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._mail = mail
        self._policy = policy
        self._generate = code_generator or generate_code

    async def issue(
        self,
        address: str,
        display_name: str,
        template_id: str,
        subject: str = VERIFY_SUBJECT,
    ) -> None:
        """Generate, deliver and record a code.

        Rate-gate checks are the caller's responsibility.

        Args:
            address: Recipient email.
            display_name: Name rendered into the template.
            template_id: Mail template to render.
            subject: Mail subject.

        Raises:
            MailDeliveryError: Delivery failed; no OTP state was written.
            StoreUnavailableError: The store could not be reached.
        """
        code = self._generate()
        await self._mail.send(
            address, subject, template_id, {"name": display_name, "otp": code}
        )
        await self._store.set_many(
            [
                (otp_key(address), code, self._policy.otp_ttl),
                (cooldown_key(address), "true", self._policy.cooldown),
            ]
        )
        logger.info("otp_issued", address=mask_email(address), template=template_id)

    async def verify(self, address: str, submitted: str) -> OtpVerification:
        """Check a submitted code.

        Args:
            address: Email the code was issued to.
            submitted: Code entered by the user.

        Returns:
            OtpVerification describing the outcome.
        """
        store = self._store
        policy = self._policy

        if await store.get(lock_key(address)) is not None:
            return OtpVerification(status=VerificationStatus.LOCKED)

        stored = await store.get(otp_key(address))
        if stored is None:
            return OtpVerification(status=VerificationStatus.EXPIRED)

        if secrets.compare_digest(stored.encode(), str(submitted).encode()):
            await store.delete(otp_key(address), failed_attempts_key(address))
            logger.info("otp_verified", address=mask_email(address))
            return OtpVerification(status=VerificationStatus.VERIFIED)

        failures = int(await store.get(failed_attempts_key(address)) or 0)
        if failures >= policy.max_failed_attempts:
            await store.set(lock_key(address), "locked", policy.lock)
            await store.delete(otp_key(address), failed_attempts_key(address))
            logger.warning(
                "otp_account_locked",
                address=mask_email(address),
                failed_attempts=failures + 1,
            )
            return OtpVerification(status=VerificationStatus.LOCKED)

        failures = await store.increment(
            failed_attempts_key(address), policy.failed_attempt_window
        )
        remaining = max(policy.max_failed_attempts - failures, 0)
        logger.info(
            "otp_mismatch",
            address=mask_email(address),
            attempts_remaining=remaining,
        )
        return OtpVerification(
            status=VerificationStatus.FAILED, attempts_remaining=remaining
        )
