"""OTP timing policy and key layout.

All OTP and rate-limit state for an address lives under these keys:

    otp:{address}                 one-time code             (otp_ttl)
    otp_cooldown:{address}        re-issue blocked          (cooldown)
    otp_request_count:{address}   issuances in window       (request_window)
    otp_spam_lock:{address}       issuance blocked          (spam_lock)
    otp_attempts:{address}        wrong codes in window     (failed_attempt_window)
    otp_lock:{address}            verification blocked      (lock)
    password_reset_grant:{address} reset allowed            (reset_grant)
"""

from dataclasses import dataclass

from auth_service.core.config import Settings


@dataclass(frozen=True)
class OtpPolicy:
    """Durations (seconds) and thresholds of the OTP state machine.

    Attributes:
        otp_ttl: Lifetime of an issued code.
        cooldown: Minimum spacing between issuances.
        request_window: Window of the request counter.
        max_requests: Prior requests tolerated in the window; the next
            request engages the spam lock.
        spam_lock: Duration of the spam lock.
        failed_attempt_window: Window of the failed-attempt counter.
        max_failed_attempts: Prior wrong codes tolerated; the next wrong
            code engages the account lock.
        lock: Duration of the account lock.
        reset_grant: How long a verified reset OTP allows a password reset.
    """

    otp_ttl: int = 120
    cooldown: int = 60
    request_window: int = 3600
    max_requests: int = 2
    spam_lock: int = 3600
    failed_attempt_window: int = 300
    max_failed_attempts: int = 2
    lock: int = 1800
    reset_grant: int = 600

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpPolicy":
        """Build the policy from application settings."""
        return cls(
            otp_ttl=settings.otp_ttl_seconds,
            cooldown=settings.otp_cooldown_seconds,
            request_window=settings.otp_request_window_seconds,
            max_requests=settings.otp_max_requests,
            spam_lock=settings.otp_spam_lock_seconds,
            failed_attempt_window=settings.otp_failed_attempt_window_seconds,
            max_failed_attempts=settings.otp_max_failed_attempts,
            lock=settings.otp_lock_seconds,
            reset_grant=settings.password_reset_grant_seconds,
        )


def otp_key(address: str) -> str:
    return f"otp:{address}"


def cooldown_key(address: str) -> str:
    return f"otp_cooldown:{address}"


def request_count_key(address: str) -> str:
    return f"otp_request_count:{address}"


def spam_lock_key(address: str) -> str:
    return f"otp_spam_lock:{address}"


def failed_attempts_key(address: str) -> str:
    return f"otp_attempts:{address}"


def lock_key(address: str) -> str:
    return f"otp_lock:{address}"


def reset_grant_key(address: str) -> str:
    return f"password_reset_grant:{address}"


def describe_duration(seconds: int) -> str:
    """Render a duration the way user-facing messages phrase it.

    Examples: 60 -> "1 minute", 1800 -> "30 minutes", 3600 -> "1 hour".
    """
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"
