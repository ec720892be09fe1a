import builtins
import dataclasses
import math
import uuid
from collections.abc import AsyncGenerator, Sequence
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from auth_service.core.email import MailDeliveryError
from auth_service.core.kv_store import StoreValue
from auth_service.core.passwords import CredentialVerifier
from auth_service.models.base import Base
from auth_service.services.auth_flows import AuthFlows
from auth_service.services.otp_engine import OtpEngine
from auth_service.services.otp_policy import OtpPolicy
from auth_service.services.ports import DuplicateAccountError, Identity, Role
from auth_service.services.token_issuer import TokenIssuer

# Security: test-only secrets. Production reads real secrets from env.
TEST_ACCESS_SECRET = "test-access-secret-that-is-at-least-32-chars"  # nosec B105  # gitleaks:allow
TEST_REFRESH_SECRET = "test-refresh-secret-that-is-at-least-32-chars"  # nosec B105  # gitleaks:allow
TEST_ISSUER = "storefront-auth"

TEST_PASSWORD = "ValidP@ss1"  # nosec B105  # gitleaks:allow
TEST_CODE = "123456"
BCRYPT_ROUNDS = 4  # Low cost factor for fast tests

_EPOCH = datetime(2026, 1, 1, tzinfo=UTC)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Manually advanced clock shared by the store and the token issuer."""

    def __init__(self) -> None:
        self.seconds = 0.0

    def advance(self, seconds: float) -> None:
        self.seconds += seconds

    def now(self) -> datetime:
        return _EPOCH + timedelta(seconds=self.seconds)


class FakeKeyValueStore:
    """In-memory KeyValueStore with TTLs driven by a FakeClock."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock.seconds >= expires_at:
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return None if entry is None else entry[0]

    async def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        self._data[key] = (str(value), self._clock.seconds + ttl_seconds)

    async def set_many(self, entries: Sequence[tuple[str, StoreValue, int]]) -> None:
        for key, value, ttl_seconds in entries:
            await self.set(key, value, ttl_seconds)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        entry = self._live(key)
        if entry is None:
            self._data[key] = ("1", self._clock.seconds + ttl_seconds)
            return 1
        value, expires_at = entry
        count = int(value) + 1
        self._data[key] = (str(count), expires_at)
        return count

    async def ttl(self, key: str) -> int | None:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return math.ceil(entry[1] - self._clock.seconds)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def keys(self) -> builtins.set[str]:
        return {key for key in list(self._data) if self._live(key) is not None}


@dataclasses.dataclass
class SentMail:
    to_address: str
    subject: str
    template_id: str
    variables: dict[str, str]


class RecordingMailSender:
    """MailSender that records messages instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[SentMail] = []
        self.fail = False

    async def send(
        self,
        to_address: str,
        subject: str,
        template_id: str,
        variables: dict[str, str],
    ) -> None:
        if self.fail:
            raise MailDeliveryError("provider rejected the message")
        self.sent.append(SentMail(to_address, subject, template_id, dict(variables)))


class InMemoryAccountGateway:
    """AccountGateway over a dict keyed by email."""

    def __init__(self) -> None:
        self.accounts: dict[str, Identity] = {}

    async def find_by_email(self, email: str) -> Identity | None:
        return self.accounts.get(email)

    async def find_by_id(self, identity_id: str) -> Identity | None:
        try:
            wanted = uuid.UUID(str(identity_id))
        except ValueError:
            return None
        return next((i for i in self.accounts.values() if i.id == wanted), None)

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
        if email in self.accounts:
            raise DuplicateAccountError(email)
        identity = Identity(
            id=uuid.uuid4(),
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            phone_number=phone_number,
            country=country,
        )
        self.accounts[email] = identity
        return identity

    async def update_password(self, email: str, password_hash: str) -> None:
        identity = self.accounts[email]
        self.accounts[email] = dataclasses.replace(identity, password_hash=password_hash)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock: FakeClock) -> FakeKeyValueStore:
    return FakeKeyValueStore(clock)


@pytest.fixture
def mail() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def accounts() -> InMemoryAccountGateway:
    return InMemoryAccountGateway()


@pytest.fixture
def policy() -> OtpPolicy:
    return OtpPolicy()


@pytest.fixture(scope="session")
def credentials() -> CredentialVerifier:
    return CredentialVerifier(rounds=BCRYPT_ROUNDS)


@pytest.fixture
def token_issuer(clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(
        access_secret=TEST_ACCESS_SECRET,
        refresh_secret=TEST_REFRESH_SECRET,
        issuer=TEST_ISSUER,
        clock=clock.now,
    )


@pytest.fixture
def otp_engine(
    kv_store: FakeKeyValueStore, mail: RecordingMailSender, policy: OtpPolicy
) -> OtpEngine:
    """OTP engine that always issues TEST_CODE."""
    return OtpEngine(kv_store, mail, policy, code_generator=lambda: TEST_CODE)


@pytest.fixture
def flows(
    kv_store: FakeKeyValueStore,
    accounts: InMemoryAccountGateway,
    mail: RecordingMailSender,
    token_issuer: TokenIssuer,
    credentials: CredentialVerifier,
    policy: OtpPolicy,
    otp_engine: OtpEngine,
) -> AuthFlows:
    return AuthFlows(
        store=kv_store,
        accounts=accounts,
        mail=mail,
        tokens=token_issuer,
        credentials=credentials,
        policy=policy,
        otp_engine=otp_engine,
    )


@pytest_asyncio.fixture
async def existing_user(
    accounts: InMemoryAccountGateway, credentials: CredentialVerifier
) -> Identity:
    """Registered buyer whose password is TEST_PASSWORD."""
    return await accounts.create(
        name="Alice",
        email="alice@example.com",
        password_hash=credentials.hash_password(TEST_PASSWORD),
    )


@pytest_asyncio.fixture
async def existing_seller(
    accounts: InMemoryAccountGateway, credentials: CredentialVerifier
) -> Identity:
    """Registered seller whose password is TEST_PASSWORD."""
    return await accounts.create(
        name="Bob's Shop",
        email="bob@example.com",
        password_hash=credentials.hash_password(TEST_PASSWORD),
        role=Role.SELLER,
        phone_number="+15550100",
        country="US",
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()
