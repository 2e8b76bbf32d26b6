"""
auth/tokens.py -- TokenCodec: stateless signing and verification of access
and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with
       distinct secrets and carry a "type" claim, so neither kind verifies as
       the other even if the secrets were ever misconfigured to match.

  Claims: sub (user id), email, role, type, jti, iat, exp. Refresh tokens add
       sid -- the id of the RefreshSession row the token belongs to -- so
       rotation revokes exactly that session rather than the user's newest.

  Errors: verification distinguishes a well-formed token past its expiry
       (ExpiredToken) from everything else (InvalidToken: malformed, bad
       signature, wrong kind, missing claims). Signature is checked before
       expiry, so a tampered expired token is reported as invalid.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from auth.errors import ExpiredToken, InvalidToken
from auth.models import TokenClaims, VerifiedRefresh
from core.clock import Clock, utcnow
from core.config import Settings

_ALGORITHM = "HS256"

_ACCESS = "access"
_REFRESH = "refresh"

_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
    "require_jti": True,
}


class TokenCodec:
    """Sign and verify the two token kinds. Holds secrets and lifetimes only."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Clock = utcnow,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required.")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh signing secrets must differ.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "TokenCodec":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_access(self, claims: TokenClaims) -> str:
        return self._encode(claims, _ACCESS, self._access_secret, self.access_ttl)

    def sign_refresh(self, claims: TokenClaims, session_id: str) -> str:
        """Sign a refresh token bound to the RefreshSession row session_id."""
        return self._encode(claims, _REFRESH, self._refresh_secret, self.refresh_ttl, sid=session_id)

    def refresh_expiry(self, issued_at: datetime) -> datetime:
        """Expiry to persist on a RefreshSession issued at issued_at."""
        return issued_at + self.refresh_ttl

    def _encode(self, claims: TokenClaims, kind: str, secret: str, ttl: timedelta, **extra: Any) -> str:
        now = self._clock()
        payload: dict[str, Any] = {
            "sub": claims.user_id,
            "email": claims.email,
            "role": claims.role,
            "type": kind,
            "jti": uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        payload.update(extra)
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> TokenClaims:
        """Return the claims of a valid access token.

        Raises ExpiredToken for a genuine token past its expiry, InvalidToken
        for anything else.
        """
        payload = self._decode(token, _ACCESS, self._access_secret)
        return _claims_from(payload)

    def verify_refresh(self, token: str) -> VerifiedRefresh:
        """Return claims and session id of a valid refresh token. Raises like verify_access()."""
        payload = self._decode(token, _REFRESH, self._refresh_secret)
        sid = payload.get("sid")
        if not isinstance(sid, str) or not sid:
            raise InvalidToken()
        return VerifiedRefresh(claims=_claims_from(payload), session_id=sid)

    @staticmethod
    def _decode(token: str, kind: str, secret: str) -> dict:
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM], options=_DECODE_OPTIONS)
        except ExpiredSignatureError as exc:
            raise ExpiredToken() from exc
        except JWTError as exc:
            raise InvalidToken() from exc
        if payload.get("type") != kind:
            raise InvalidToken()
        return payload


def _claims_from(payload: dict) -> TokenClaims:
    email = payload.get("email")
    role = payload.get("role")
    if not isinstance(email, str) or not isinstance(role, str):
        raise InvalidToken()
    return TokenClaims(user_id=payload["sub"], email=email, role=role)
