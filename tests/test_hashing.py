"""Unit tests for auth/hashing.py -- CredentialHasher.

Covers:
- hash/verify round trip and mismatch
- salting (same secret hashes differently)
- secrets longer than bcrypt's 72-byte input limit
- configured work factor appears in the hash
- malformed stored hashes verify as False instead of raising
"""

from auth.hashing import CredentialHasher


def test_verify_matches_own_hash(hasher: CredentialHasher) -> None:
    hashed = hasher.hash("P4ss!!word")
    assert hasher.verify("P4ss!!word", hashed) is True


def test_verify_rejects_other_secret(hasher: CredentialHasher) -> None:
    hashed = hasher.hash("P4ss!!word")
    assert hasher.verify("P4ss!!wore", hashed) is False


def test_hash_is_salted(hasher: CredentialHasher) -> None:
    assert hasher.hash("same-secret") != hasher.hash("same-secret")


def test_long_secrets_differing_after_72_bytes_are_distinct(hasher: CredentialHasher) -> None:
    """Refresh tokens share long prefixes; bytes past 72 must still matter."""
    prefix = "x" * 100
    hashed = hasher.hash(prefix + "A")
    assert hasher.verify(prefix + "A", hashed) is True
    assert hasher.verify(prefix + "B", hashed) is False


def test_hash_never_contains_secret(hasher: CredentialHasher) -> None:
    assert "hunter2hunter2" not in hasher.hash("hunter2hunter2")


def test_work_factor_is_encoded_in_hash() -> None:
    hashed = CredentialHasher(rounds=5).hash("secret")
    assert hashed.startswith("$2b$05$")


def test_malformed_hash_verifies_false(hasher: CredentialHasher) -> None:
    assert hasher.verify("secret", "not-a-bcrypt-hash") is False


def test_dummy_verify_returns_nothing(hasher: CredentialHasher) -> None:
    assert hasher.dummy_verify("anything") is None
