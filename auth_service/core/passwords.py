"""Credential verification: bcrypt hashing and comparison.

Passwords are hashed with a fixed work factor (BCRYPT_ROUNDS, default 10).
The same verifier answers login checks and the password-reuse check on
reset.
"""

import bcrypt

# bcrypt only considers the first 72 bytes of input
_BCRYPT_MAX_BYTES = 72


class CredentialVerifier:
    """One-way password hash with verify.

    Args:
        rounds: bcrypt cost factor. Tests pass 4 for speed.
    """

    def __init__(self, rounds: int = 10) -> None:
        self._rounds = rounds
        self._dummy_hash: bytes | None = None

    def hash_password(self, plaintext: str) -> str:
        """Hash a plaintext password.

        Args:
            plaintext: Password as submitted by the user.

        Returns:
            bcrypt digest (includes salt and cost).
        """
        digest = bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=self._rounds))
        return digest.decode()

    def password_matches(self, plaintext: str, digest: str | None) -> bool:
        """Compare a plaintext password against a stored digest.

        A missing or malformed digest never matches.

        Args:
            plaintext: Candidate password.
            digest: Stored bcrypt digest.

        Returns:
            True if the password produces the digest.
        """
        if not digest:
            return False
        try:
            return bcrypt.checkpw(_encode(plaintext), digest.encode())
        except ValueError:
            return False

    def burn_comparison(self, plaintext: str) -> None:
        """Spend one bcrypt comparison against a throwaway hash.

        Security: called when the account does not exist so that response
        time does not reveal whether an email is registered.
        """
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(
                b"storefront-dummy-password", bcrypt.gensalt(rounds=self._rounds)
            )
        bcrypt.checkpw(_encode(plaintext), self._dummy_hash)


def _encode(plaintext: str) -> bytes:
    return plaintext.encode()[:_BCRYPT_MAX_BYTES]
