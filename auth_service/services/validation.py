"""Field-presence and format checks for auth requests.

Only presence and a basic email shape are checked here; password strength
rules are out of scope for the auth core.
"""

import re
from collections.abc import Mapping
from typing import Any

from auth_service.services.outcomes import Err, ErrorKind, fail
from auth_service.services.ports import Role

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Seller accounts carry contact details in addition to the common fields
_REQUIRED_REGISTRATION_FIELDS: dict[Role, tuple[str, ...]] = {
    Role.USER: ("name", "email", "password"),
    Role.SELLER: ("name", "email", "password", "phone_number", "country"),
}


def is_blank(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def require_fields(message: str, *values: Any) -> Err | None:
    """Return a VALIDATION failure if any value is blank.

    Args:
        message: User-facing message for the failure.
        *values: Field values that must all be present.

    Returns:
        Err if a value is missing, None otherwise.
    """
    if any(is_blank(value) for value in values):
        return fail(ErrorKind.VALIDATION, message)
    return None


def check_registration_data(data: Mapping[str, Any], role: Role) -> Err | None:
    """Validate a registration payload.

    Args:
        data: Submitted fields (name, email, password, and for sellers
            phone_number and country).
        role: Account role being registered.

    Returns:
        Err describing the first problem, or None if the data is usable.
    """
    missing = [
        name
        for name in _REQUIRED_REGISTRATION_FIELDS[role]
        if is_blank(data.get(name))
    ]
    if missing:
        return fail(ErrorKind.VALIDATION, "All fields are required", missing=missing)

    if not is_valid_email(str(data["email"])):
        return fail(ErrorKind.VALIDATION, "Invalid email format!")

    return None


def is_valid_email(email: str) -> bool:
    return _EMAIL_RE.match(email) is not None


def mask_email(email: str) -> str:
    """Mask an email for logs: ``alice@example.com`` -> ``a***@example.com``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
