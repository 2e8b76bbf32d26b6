"""Unit tests for auth/tokens.py -- TokenCodec.

Covers:
- access and refresh tokens verify as their own kind and carry the claims
- refresh tokens carry the session id
- a token of one kind never verifies as the other
- tampered, garbage and wrong-secret tokens raise InvalidToken
- tokens past expiry raise ExpiredToken
- every token has a fresh jti, so two tokens issued in the same second differ
- constructor rejects missing or identical secrets
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import ExpiredToken, InvalidToken, TokenError
from auth.models import TokenClaims
from auth.tokens import TokenCodec

ACCESS_SECRET = "a" * 32
REFRESH_SECRET = "r" * 32

CLAIMS = TokenClaims(user_id="0b0e8c1e-0000-4000-8000-000000000001", email="jane@example.com", role="user")


class TestRoundTrip:
    def test_access_token_yields_claims(self, codec: TokenCodec) -> None:
        assert codec.verify_access(codec.sign_access(CLAIMS)) == CLAIMS

    def test_refresh_token_yields_claims_and_session(self, codec: TokenCodec) -> None:
        verified = codec.verify_refresh(codec.sign_refresh(CLAIMS, "session-1"))
        assert verified.claims == CLAIMS
        assert verified.session_id == "session-1"

    def test_tokens_issued_together_are_distinct(self, codec: TokenCodec) -> None:
        assert codec.sign_access(CLAIMS) != codec.sign_access(CLAIMS)
        assert codec.sign_refresh(CLAIMS, "s") != codec.sign_refresh(CLAIMS, "s")

    def test_payload_carries_type_and_identity(self, codec: TokenCodec) -> None:
        payload = jwt.get_unverified_claims(codec.sign_refresh(CLAIMS, "s-9"))
        assert payload["type"] == "refresh"
        assert payload["sub"] == CLAIMS.user_id
        assert payload["email"] == CLAIMS.email
        assert payload["role"] == "user"
        assert payload["sid"] == "s-9"
        assert payload["jti"]

    def test_refresh_expiry_matches_ttl(self) -> None:
        codec = TokenCodec(ACCESS_SECRET, REFRESH_SECRET, refresh_ttl=timedelta(days=2))
        issued = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert codec.refresh_expiry(issued) == issued + timedelta(days=2)


class TestKindSeparation:
    def test_refresh_token_is_not_an_access_token(self, codec: TokenCodec) -> None:
        with pytest.raises(InvalidToken):
            codec.verify_access(codec.sign_refresh(CLAIMS, "s"))

    def test_access_token_is_not_a_refresh_token(self, codec: TokenCodec) -> None:
        with pytest.raises(InvalidToken):
            codec.verify_refresh(codec.sign_access(CLAIMS))

    def test_type_claim_is_checked_even_with_matching_secret(self, codec: TokenCodec) -> None:
        """A refresh-kind payload signed with the access secret is still rejected."""
        forged = jwt.encode(
            {
                "sub": CLAIMS.user_id,
                "email": CLAIMS.email,
                "role": CLAIMS.role,
                "type": "refresh",
                "jti": "x",
                "iat": datetime.now(timezone.utc),
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            ACCESS_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            codec.verify_access(forged)


class TestRejection:
    def test_garbage_is_invalid(self, codec: TokenCodec) -> None:
        with pytest.raises(InvalidToken):
            codec.verify_access("not.a.jwt")

    def test_tampered_signature_is_invalid(self, codec: TokenCodec) -> None:
        token = codec.sign_access(CLAIMS)
        tampered = token[:-2] + ("AA" if token[-2:] != "AA" else "BB")
        with pytest.raises(InvalidToken):
            codec.verify_access(tampered)

    def test_other_secret_is_invalid(self, codec: TokenCodec) -> None:
        other = TokenCodec("b" * 32, "c" * 32)
        with pytest.raises(InvalidToken):
            codec.verify_access(other.sign_access(CLAIMS))

    def test_refresh_without_sid_is_invalid(self, codec: TokenCodec) -> None:
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": CLAIMS.user_id,
                "email": CLAIMS.email,
                "role": CLAIMS.role,
                "type": "refresh",
                "jti": "x",
                "iat": now,
                "exp": now + timedelta(minutes=5),
            },
            REFRESH_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            codec.verify_refresh(token)

    def test_expired_access_token(self) -> None:
        issued = datetime.now(timezone.utc) - timedelta(hours=1)
        codec = TokenCodec(ACCESS_SECRET, REFRESH_SECRET, clock=lambda: issued)
        with pytest.raises(ExpiredToken):
            codec.verify_access(codec.sign_access(CLAIMS))

    def test_expired_refresh_token(self) -> None:
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        codec = TokenCodec(ACCESS_SECRET, REFRESH_SECRET, clock=lambda: issued)
        with pytest.raises(ExpiredToken):
            codec.verify_refresh(codec.sign_refresh(CLAIMS, "s"))

    def test_both_failures_share_a_base(self) -> None:
        assert issubclass(ExpiredToken, TokenError)
        assert issubclass(InvalidToken, TokenError)


class TestConstruction:
    @pytest.mark.parametrize("access, refresh", [("", REFRESH_SECRET), (ACCESS_SECRET, "")])
    def test_missing_secret_rejected(self, access: str, refresh: str) -> None:
        with pytest.raises(ValueError):
            TokenCodec(access, refresh)

    def test_identical_secrets_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenCodec(ACCESS_SECRET, ACCESS_SECRET)
