"""User model - buyer and seller accounts.

A single table holds both roles. Sellers additionally carry a phone number
and country; both are NULL for buyers.
"""

import uuid

from sqlalchemy import CheckConstraint, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from auth_service.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """Account for authentication.

    Attributes:
        id: UUID primary key.
        name: Display name given at registration.
        email: Unique email address, case-sensitive as stored.
        password_hash: bcrypt hash.
        role: 'user' or 'seller'.
        phone_number: Seller contact number. NULL for users.
        country: Seller country. NULL for users.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'seller')", name="ck_users_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
    )
    phone_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    country: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
