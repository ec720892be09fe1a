"""Repository for User CRUD operations.

Provides database access for the users table, plus SqlAccountGateway,
which adapts the repository to the AccountGateway contract the auth core
depends on.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.models.user import User
from auth_service.services.ports import DuplicateAccountError, Identity, Role

logger = logging.getLogger(__name__)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (exact, case-sensitive match).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: str = "user",
        phone_number: str | None = None,
        country: str | None = None,
    ) -> User:
        """Create a new user.

        Args:
            db: Async database session.
            name: Display name.
            email: Email address, stored as given.
            password_hash: bcrypt hash.
            role: 'user' or 'seller'.
            phone_number: Seller contact number.
            country: Seller country.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            phone_number=phone_number,
            country=country,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update_password(
        db: AsyncSession, email: str, password_hash: str
    ) -> bool:
        """Replace the password hash of the user with this email.

        Args:
            db: Async database session.
            email: Email of the user.
            password_hash: New bcrypt hash.

        Returns:
            True if a row was updated, False if no user has this email.
        """
        stmt = (
            update(User)
            .where(User.email == email)
            .values(password_hash=password_hash)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount > 0


def to_identity(user: User) -> Identity:
    """Convert an ORM row into the core's read-only Identity."""
    return Identity(
        id=user.id,
        name=user.name,
        email=user.email,
        password_hash=user.password_hash,
        role=Role(user.role),
        phone_number=user.phone_number,
        country=user.country,
    )


class SqlAccountGateway:
    """AccountGateway backed by UserRepository.

    Args:
        db: Request-scoped async session. Commit happens in get_db().
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_by_email(self, email: str) -> Identity | None:
        user = await UserRepository.get_by_email(self._db, email)
        return None if user is None else to_identity(user)

    async def find_by_id(self, identity_id: str) -> Identity | None:
        try:
            user_id = uuid.UUID(str(identity_id))
        except ValueError:
            return None
        user = await UserRepository.get_by_id(self._db, user_id)
        return None if user is None else to_identity(user)

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
        try:
            user = await UserRepository.create(
                self._db,
                name=name,
                email=email,
                password_hash=password_hash,
                role=role.value,
                phone_number=phone_number,
                country=country,
            )
        except IntegrityError as exc:
            await self._db.rollback()
            logger.info("Duplicate account insert rejected")
            raise DuplicateAccountError(email) from exc
        return to_identity(user)

    async def update_password(self, email: str, password_hash: str) -> None:
        await UserRepository.update_password(self._db, email, password_hash)
