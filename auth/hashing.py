"""
auth/hashing.py -- Deterministic password hashing for SQL equality lookups.

Security design decisions:
  PBKDF2-HMAC-SHA512, 10,000 iterations, 64-byte output, hex encoded.
       The configured secret is the salt. The digest must be deterministic so
       the operator's SQL can compare it with "password = ?" -- a per-user
       random salt (bcrypt, argon2) would make that lookup impossible.

  Empty secret: hashing is switched off and the plaintext is passed through
       verbatim. This is a supported degraded mode for legacy tables that
       store plaintext, not a fallback on error. StartupValidator warns about
       it once at construction.

Layer rule: no imports from plugin.py.
"""

from __future__ import annotations

import hashlib

from auth.models import Credential, HashedCredential

_DIGEST = "sha512"
_ITERATIONS = 10_000
_KEY_LENGTH = 64  # bytes -> 128 hex chars


class PasswordHasher:
    """Turns plaintext passwords into the value stored in the users table."""

    def __init__(self, secret: str) -> None:
        self._secret = secret.encode("utf-8")

    @property
    def enabled(self) -> bool:
        return len(self._secret) > 0

    def hash(self, plaintext: str) -> str:
        """Return the PBKDF2 hex digest of plaintext, or plaintext if no secret is set."""
        if not self.enabled:
            return plaintext
        return hashlib.pbkdf2_hmac(
            _DIGEST,
            plaintext.encode("utf-8"),
            self._secret,
            _ITERATIONS,
            dklen=_KEY_LENGTH,
        ).hex()

    def hash_credential(self, credential: Credential) -> HashedCredential:
        return HashedCredential(
            username=credential.username,
            hashed_password=self.hash(credential.plaintext_password),
        )
