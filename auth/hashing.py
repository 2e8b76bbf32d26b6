"""
auth/hashing.py -- CredentialHasher: one-way hashing for passwords, refresh
tokens, and one-time codes.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). The cost factor makes each
  guess expensive while a single verify stays cheap enough for a login.

  Pre-hash. bcrypt only reads the first 72 bytes of its input, and bcrypt 4.1+
  rejects longer inputs outright. Refresh tokens are JWTs well over 72 bytes
  whose leading bytes are identical across tokens for the same user, so every
  secret is first reduced to base64(SHA-256(secret)) -- 44 ASCII bytes -- and
  that digest is what bcrypt sees. The same transform is applied on verify, so
  the three call sites share one interface.

  Timing equalization. dummy_verify() burns one bcrypt verification against a
  hash computed at construction so a login for an unknown email costs the same
  as a wrong password.

Nothing in this module logs its inputs.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

import bcrypt


def _prehash(secret: str) -> bytes:
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class CredentialHasher:
    """Salted, slow one-way hash with a fixed work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash(secrets.token_hex(16))

    def hash(self, secret: str) -> str:
        """Return a bcrypt hash of secret using this hasher's work factor."""
        return bcrypt.hashpw(_prehash(secret), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, hashed: str) -> bool:
        """Return True if secret matches hashed. Malformed hashes verify as False."""
        try:
            return bcrypt.checkpw(_prehash(secret), hashed.encode("utf-8"))
        except ValueError:
            return False

    def dummy_verify(self, secret: str) -> None:
        """Spend one verification's worth of CPU and discard the result."""
        self.verify(secret, self._dummy_hash)
