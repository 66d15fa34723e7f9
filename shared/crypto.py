"""
Cryptographic helpers — password hashing and token hashing.

Passwords use argon2id (via argon2-cffi) with a configurable work factor.
OTP codes, refresh tokens and reset tokens are already high-entropy or
short-lived values and are hashed with SHA-256 before they are stored.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


class CredentialHasher:
    """Slow, salted, one-way hashing for low-entropy secrets (passwords)."""

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    @classmethod
    def from_settings(cls, settings) -> "CredentialHasher":
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def hash(self, secret: str) -> str:
        """Hash *secret* with argon2id.

        Returns:
            Argon2 hash string (includes algorithm parameters and salt).
        """
        return self._hasher.hash(secret)

    def verify(self, secret: str, digest: Optional[str]) -> bool:
        """Verify *secret* against an argon2 *digest*.

        Returns:
            ``True`` if the secret matches, ``False`` for any failure
            (wrong secret, missing or malformed hash).
        """
        if not digest:
            return False
        try:
            return self._hasher.verify(digest, secret)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, digest: str) -> bool:
        """True when *digest* was produced with weaker parameters than ours."""
        try:
            return self._hasher.check_needs_rehash(digest)
        except InvalidHashError:
            return True


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes, refresh tokens and reset tokens before storing
    them so the plaintext is never persisted.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tokens_match(candidate: str, stored_hash: Optional[str]) -> bool:
    """Constant-time comparison of ``hash_token(candidate)`` with *stored_hash*."""
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_token(candidate), stored_hash)
