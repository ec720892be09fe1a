"""Typed outcomes returned by the auth core.

Domain failures (bad input, wrong credentials, cooldowns, locks) are
values, not exceptions. Every orchestration step returns ``Ok(value)`` or
``Err(AuthFailure)``; the HTTP layer decides how to present a failure.
Only unrecoverable conditions (store unreachable, configuration missing)
are raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# =============================================================================
# Error kinds
# =============================================================================


class ErrorKind(str, Enum):
    """Closed set of failure categories.

    Values:
        VALIDATION: Missing or malformed input, or a rejected transition
            (duplicate email, password reuse, wrong/expired OTP).
        AUTHENTICATION: Unknown identity, wrong password, bad token.
        NOT_FOUND: Identity absent where a mutation was expected.
        RATE_LIMITED: Cooldown, spam lock or account lock in force.
        OPERATIONAL: A collaborator failed (e.g., mail delivery).
    """

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    OPERATIONAL = "operational"


@dataclass(frozen=True)
class AuthFailure:
    """A typed, non-retriable failure.

    Attributes:
        kind: Failure category.
        message: User-facing message.
        details: Optional structured details (e.g., retry_after_seconds,
            attempts_remaining).
    """

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying an AuthFailure."""

    failure: AuthFailure


Result = Ok[T] | Err


def fail(kind: ErrorKind, message: str, **details: Any) -> Err:
    """Build an Err in one call.

    Args:
        kind: Failure category.
        message: User-facing message.
        **details: Structured details attached to the failure.

    Returns:
        Err wrapping the AuthFailure.
    """
    return Err(AuthFailure(kind=kind, message=message, details=details))
