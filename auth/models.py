"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
services do the work; the only behavior here is the usability predicates
that encode the session and code state machines, and the public projection
that strips the password hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

ROLES = ("user", "admin")
RISK_PROFILES = ("low", "moderate", "high")


@dataclass
class User:
    """A portfolio app account as held by the user directory.

    risk_profile is carried through for the portfolio layer and not
    interpreted here. password_hash is only ever changed by the reset flow.
    """

    email: str
    first_name: str
    password_hash: str
    last_name: str | None = None
    risk_profile: str = "moderate"
    role: str = "user"
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RefreshSession:
    """One issued refresh token. token_hash is a bcrypt hash, never the raw token.

    State machine: active -> revoked (terminal). Rows are never deleted here.
    """

    user_id: str
    token_hash: str
    expires_at: datetime
    id: str | None = None
    revoked: bool = False
    created_at: datetime | None = None

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and now < self.expires_at


@dataclass
class OneTimeCode:
    """A password-reset code. Consumed codes are stamped, not deleted."""

    email: str
    code_hash: str
    expires_at: datetime
    id: int | None = None
    consumed_at: datetime | None = None
    created_at: datetime | None = None

    def is_usable(self, now: datetime) -> bool:
        return self.consumed_at is None and now < self.expires_at


@dataclass(frozen=True)
class TokenClaims:
    """Minimal payload embedded in both access and refresh tokens."""

    user_id: str
    email: str
    role: str

    @classmethod
    def for_user(cls, user: User) -> "TokenClaims":
        return cls(user_id=str(user.id), email=user.email, role=user.role)


@dataclass(frozen=True)
class VerifiedRefresh:
    """Claims of a verified refresh token plus the session it was issued for."""

    claims: TokenClaims
    session_id: str


@dataclass(frozen=True)
class AuthResult:
    access_token: str
    refresh_token: str
    user: dict[str, Any]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def public_user(user: User) -> dict[str, Any]:
    """Project a User for callers. The password hash is never included."""
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "risk_profile": user.risk_profile,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


def normalize_email(email: str) -> str:
    """Canonical form used for every directory and code lookup."""
    return email.strip().lower()
