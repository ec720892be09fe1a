"""Rate gate for OTP issuance.

Decides whether a new OTP may be issued for an address and escalates
repeated requests to a spam lock.

Check order matters: a long-lived lock must mask a shorter cooldown so a
fully locked caller never learns about weaker restrictions.

    AccountLock (30 min)  >  SpamLock (1 h)  >  Cooldown (1 min)
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog

from auth_service.core.kv_store import KeyValueStore
from auth_service.services.otp_policy import (
    OtpPolicy,
    cooldown_key,
    describe_duration,
    lock_key,
    request_count_key,
    spam_lock_key,
)
from auth_service.services.outcomes import AuthFailure, ErrorKind
from auth_service.services.validation import mask_email

logger = structlog.get_logger()


class DenialReason(str, Enum):
    """Why an OTP request was refused."""

    ACCOUNT_LOCKED = "account_locked"
    SPAM_LOCKED = "spam_locked"
    COOLDOWN = "cooldown"
    SPAM_LOCK_TRIGGERED = "spam_lock_triggered"


@dataclass(frozen=True)
class GateDecision:
    """Allowed, or Denied with a reason and user-facing message.

    Attributes:
        allowed: True if the request may proceed.
        reason: Denial reason (None when allowed).
        message: User-facing message (empty when allowed).
        retry_after_seconds: Remaining TTL of the blocking key, if known.
    """

    allowed: bool
    reason: DenialReason | None = None
    message: str = ""
    retry_after_seconds: int | None = field(default=None)

    def to_failure(self) -> AuthFailure:
        """Express a denial as a RATE_LIMITED failure."""
        details: dict = {"reason": self.reason.value if self.reason else None}
        if self.retry_after_seconds is not None:
            details["retry_after_seconds"] = self.retry_after_seconds
        return AuthFailure(
            kind=ErrorKind.RATE_LIMITED,
            message=self.message,
            details=details,
        )


_ALLOWED = GateDecision(allowed=True)


class RateGate:
    """Lock / spam / cooldown gate in front of OTP issuance.

    Args:
        store: Ephemeral key-value store.
        policy: OTP timing policy.
    """

    def __init__(self, store: KeyValueStore, policy: OtpPolicy) -> None:
        self._store = store
        self._policy = policy

    async def check_request_allowed(self, address: str) -> GateDecision:
        """Decide whether an OTP may be issued now. No side effects.

        Args:
            address: Email address requesting an OTP.

        Returns:
            Allowed, or Denied with the highest-priority restriction.
        """
        policy = self._policy
        checks = (
            (
                lock_key(address),
                DenialReason.ACCOUNT_LOCKED,
                "Account locked due to multiple failed attempts! "
                f"Try again after {describe_duration(policy.lock)}.",
            ),
            (
                spam_lock_key(address),
                DenialReason.SPAM_LOCKED,
                "You have requested too many OTPs in a short time. "
                f"Please wait {describe_duration(policy.spam_lock)} "
                "before requesting again.",
            ),
            (
                cooldown_key(address),
                DenialReason.COOLDOWN,
                f"You must wait at least {describe_duration(policy.cooldown)} "
                "before requesting another OTP.",
            ),
        )
        for key, reason, message in checks:
            if await self._store.get(key) is not None:
                logger.info(
                    "otp_request_denied",
                    address=mask_email(address),
                    reason=reason.value,
                )
                return GateDecision(
                    allowed=False,
                    reason=reason,
                    message=message,
                    retry_after_seconds=await self._store.ttl(key),
                )
        return _ALLOWED

    async def record_request(self, address: str) -> GateDecision:
        """Count an issuance, engaging the spam lock past the threshold.

        Must be called exactly once per issuance, after
        check_request_allowed() passes and before the code is issued.

        Args:
            address: Email address requesting an OTP.

        Returns:
            Allowed, or Denied(SPAM_LOCK_TRIGGERED).
        """
        policy = self._policy
        count = int(await self._store.get(request_count_key(address)) or 0)
        if count >= policy.max_requests:
            await self._store.set(spam_lock_key(address), "locked", policy.spam_lock)
            logger.warning(
                "otp_spam_lock_engaged",
                address=mask_email(address),
                prior_requests=count,
            )
            return GateDecision(
                allowed=False,
                reason=DenialReason.SPAM_LOCK_TRIGGERED,
                message="Too many OTP requests. Please wait "
                f"{describe_duration(policy.spam_lock)} before requesting again.",
                retry_after_seconds=policy.spam_lock,
            )

        await self._store.increment(request_count_key(address), policy.request_window)
        return _ALLOWED
