"""Port interfaces the auth core requires from its collaborators.

The core never touches the relational store or the mail provider
directly; adapters in repositories/ and core/email.py implement these
protocols.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class Role(str, Enum):
    """Account role carried in token claims."""

    USER = "user"
    SELLER = "seller"


@dataclass(frozen=True)
class Identity:
    """Read-only view of an account.

    Attributes:
        id: Account UUID.
        name: Display name.
        email: Unique email, case-sensitive as stored.
        password_hash: bcrypt digest.
        role: user or seller.
        phone_number: Seller contact number (None for users).
        country: Seller country (None for users).
    """

    id: uuid.UUID
    name: str
    email: str
    password_hash: str
    role: Role
    phone_number: str | None = None
    country: str | None = None


class DuplicateAccountError(Exception):
    """Raised by AccountGateway.create when the email is already taken."""


class AccountGateway(Protocol):
    """Minimal lookup/insert/update contract against the account store."""

    async def find_by_email(self, email: str) -> Identity | None:
        """Return the identity registered with email, if any."""
        ...

    async def find_by_id(self, identity_id: str) -> Identity | None:
        """Return the identity with this id, if any.

        Malformed ids behave as absent.
        """
        ...

    async def create(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: Role = Role.USER,
        phone_number: str | None = None,
        country: str | None = None,
    ) -> Identity:
        """Persist a new identity and return it.

        Raises:
            DuplicateAccountError: If the email is already registered.
        """
        ...

    async def update_password(self, email: str, password_hash: str) -> None:
        """Replace the password digest of the identity with this email."""
        ...


class MailSender(Protocol):
    """Outbound email contract. Fails loudly on delivery error."""

    async def send(
        self,
        to_address: str,
        subject: str,
        template_id: str,
        variables: dict[str, str],
    ) -> None:
        """Render template_id with variables and deliver it.

        Raises:
            MailDeliveryError: If the message could not be delivered.
        """
        ...
