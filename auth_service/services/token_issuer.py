"""Access and refresh token issuance, verification and rotation.

Tokens are stateless HS256 JWTs carrying ``{sub, role, type}`` plus the
standard ``iat``, ``exp``, ``iss`` and ``aud`` claims. Access and refresh
tokens are signed with different secrets, so one can never pass for the
other. There is no server-side revocation list; verification is signature
plus expiry only.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import jwt
import structlog

from auth_service.services.outcomes import ErrorKind, Ok, Result, fail
from auth_service.services.ports import AccountGateway, Role

logger = structlog.get_logger()

_ALGORITHM = "HS256"
_AUDIENCE = "storefront"

_INVALID_REFRESH_MSG = "Forbidden! Invalid refresh token"


class TokenKind(str, Enum):
    """Which signing key and lifetime a token uses."""

    ACCESS = "access"
    REFRESH = "refresh"


class TokenStatus(str, Enum):
    """Outcome of verifying a token."""

    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded claims of a valid token."""

    subject_id: str
    role: Role
    kind: TokenKind
    expires_at: datetime


@dataclass(frozen=True)
class TokenVerification:
    """Result of TokenIssuer.verify().

    Attributes:
        status: VALID, INVALID or EXPIRED.
        claims: Present only when status is VALID.
    """

    status: TokenStatus
    claims: TokenClaims | None = None


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh tokens issued together at login."""

    access_token: str
    refresh_token: str


class TokenIssuer:
    """Mints and verifies signed, time-bound tokens.

    Args:
        access_secret: HMAC secret for access tokens.
        refresh_secret: HMAC secret for refresh tokens.
        issuer: iss claim value.
        access_ttl: Access token lifetime (default 15 minutes).
        refresh_ttl: Refresh token lifetime (default 7 days).
        clock: Returns the current UTC time. Injected for tests.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        issuer: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: access_ttl,
            TokenKind.REFRESH: refresh_ttl,
        }
        self._issuer = issuer
        self._clock = clock or (lambda: datetime.now(UTC))

    def issue_access_token(self, subject_id: str, role: Role) -> str:
        """Issue a short-lived access token."""
        return self._encode(TokenKind.ACCESS, subject_id, role)

    def issue_refresh_token(self, subject_id: str, role: Role) -> str:
        """Issue a long-lived refresh token."""
        return self._encode(TokenKind.REFRESH, subject_id, role)

    def issue_pair(self, subject_id: str, role: Role) -> TokenPair:
        """Issue both tokens for a successful login."""
        return TokenPair(
            access_token=self.issue_access_token(subject_id, role),
            refresh_token=self.issue_refresh_token(subject_id, role),
        )

    def verify(self, token: str, kind: TokenKind) -> TokenVerification:
        """Check signature, token type and expiry.

        Expiry is evaluated against the injected clock rather than PyJWT's
        wall clock so that elapsed time can be simulated.

        Args:
            token: Encoded JWT.
            kind: Expected token kind (selects the secret).

        Returns:
            TokenVerification with claims when valid.
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[_ALGORITHM],
                audience=_AUDIENCE,
                issuer=self._issuer,
                options={
                    "require": ["sub", "role", "type", "exp", "iat"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
            role = Role(payload["role"])
            token_kind = TokenKind(payload["type"])
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
        except (jwt.InvalidTokenError, KeyError, ValueError, TypeError):
            return TokenVerification(status=TokenStatus.INVALID)

        if token_kind is not kind:
            return TokenVerification(status=TokenStatus.INVALID)

        if self._clock() >= expires_at:
            return TokenVerification(status=TokenStatus.EXPIRED)

        return TokenVerification(
            status=TokenStatus.VALID,
            claims=TokenClaims(
                subject_id=str(payload["sub"]),
                role=role,
                kind=token_kind,
                expires_at=expires_at,
            ),
        )

    async def rotate(
        self, refresh_token: str, accounts: AccountGateway
    ) -> Result[str]:
        """Exchange a refresh token for a fresh access token.

        The identity must still exist. The role in the new token comes
        from the freshly fetched identity, not from the refresh claim, so a
        role change takes effect at the next rotation.

        Args:
            refresh_token: Encoded refresh JWT.
            accounts: Account gateway used to re-resolve the identity.

        Returns:
            Ok(new access token) or Err(AUTHENTICATION).
        """
        verification = self.verify(refresh_token, TokenKind.REFRESH)
        if verification.claims is None:
            return fail(ErrorKind.AUTHENTICATION, _INVALID_REFRESH_MSG)

        claims = verification.claims
        identity = await accounts.find_by_id(claims.subject_id)
        if identity is None:
            return fail(ErrorKind.AUTHENTICATION, "Forbidden! User doesn't exist")

        if identity.role is not claims.role:
            logger.info(
                "token_role_rederived",
                subject_id=claims.subject_id,
                claimed_role=claims.role.value,
                current_role=identity.role.value,
            )

        return Ok(self.issue_access_token(str(identity.id), identity.role))

    def _encode(self, kind: TokenKind, subject_id: str, role: Role) -> str:
        now = self._clock()
        payload = {
            "sub": subject_id,
            "role": role.value,
            "type": kind.value,
            "aud": _AUDIENCE,
            "iss": self._issuer,
            "iat": now,
            "exp": now + self._ttls[kind],
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)
