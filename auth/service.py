"""
auth/service.py -- AuthService: signup, login, refresh rotation, logout.

Security design decisions:
  [A1] Login never reveals whether the email exists. Unknown email and wrong
       password raise the same InvalidCredentials, and the unknown-email path
       spends one bcrypt verification against a dummy hash so both paths cost
       the same.

  [A2] Refresh tokens are single-use. Every successful refresh revokes the
       session the presented token belongs to (located by the token's "sid"
       claim) and creates a new one in the same transaction. The revoke is
       conditional on the row still being active, so of two concurrent
       refreshes with one token exactly one wins; the other gets
       InvalidRefreshToken.

  [A3] Every refresh failure is reported as InvalidRefreshToken. The internal
       reason is logged at INFO for operators, never returned.

  [A4] Signup writes the user and the first session in one transaction. A
       user row without a session is never observable.

  bcrypt work (password hash, refresh token hash) happens before a write
  transaction opens, so the single-writer lock is held only for the SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import NoReturn
from uuid import uuid4

from auth.errors import ConflictError, InvalidCredentials, InvalidRefreshToken, TokenError
from auth.hashing import CredentialHasher
from auth.models import (
    AuthResult,
    RefreshSession,
    TokenClaims,
    TokenPair,
    User,
    normalize_email,
    public_user,
)
from auth.store import AuthStore
from auth.tokens import TokenCodec
from core.clock import Clock, utcnow

logger = logging.getLogger("folioauth.auth")


class AuthService:
    """Orchestrates credential checks, token issuance, and session state.

    Holds no mutable state of its own; every request reads and writes through
    the injected AuthStore.
    """

    def __init__(
        self,
        store: AuthStore,
        hasher: CredentialHasher,
        codec: TokenCodec,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._codec = codec
        self._clock = clock

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def signup(
        self,
        first_name: str,
        last_name: str | None,
        email: str,
        password: str,
        risk_profile: str = "moderate",
    ) -> AuthResult:
        """Create an account and its first session [A4].

        Raises ConflictError if the email is already registered. The
        transaction re-checks through the UNIQUE index, so a signup racing
        this one also fails with ConflictError and leaves no session behind.
        """
        email = normalize_email(email)
        with self._store.transaction() as uow:
            if uow.users.get_by_email(email) is not None:
                logger.info("Signup rejected: email already registered")
                raise ConflictError()

        now = self._clock()
        user = User(
            id=str(uuid4()),
            first_name=first_name,
            last_name=last_name or None,
            email=email,
            password_hash=self._hasher.hash(password),
            risk_profile=risk_profile,
            role="user",
            created_at=now,
            updated_at=now,
        )
        access_token, refresh_token, session = self._issue(user)

        with self._store.transaction() as uow:
            uow.users.create(user)
            uow.sessions.create(session)

        logger.info("Signup user_id=%s session_id=%s", user.id, session.id)
        return AuthResult(access_token=access_token, refresh_token=refresh_token, user=public_user(user))

    def login(self, email: str, password: str) -> AuthResult:
        """Verify a password and open an additional session [A1].

        Prior sessions stay valid; each device keeps its own refresh token.
        """
        email = normalize_email(email)
        with self._store.transaction() as uow:
            user = uow.users.get_by_email(email)

        if user is None:
            self._hasher.dummy_verify(password)  # [A1] equalize timing
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        if not self._hasher.verify(password, user.password_hash):
            logger.info("Login failed: bad password user_id=%s", user.id)
            raise InvalidCredentials()

        access_token, refresh_token, session = self._issue(user)
        with self._store.transaction() as uow:
            uow.sessions.create(session)

        logger.info("Login user_id=%s session_id=%s", user.id, session.id)
        return AuthResult(access_token=access_token, refresh_token=refresh_token, user=public_user(user))

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair, rotating the session [A2][A3]."""
        try:
            verified = self._codec.verify_refresh(refresh_token)
        except TokenError as exc:
            self._reject(exc.code)

        now = self._clock()
        with self._store.transaction() as uow:
            user = uow.users.get_by_id(verified.claims.user_id)
            session = uow.sessions.get_active(verified.session_id, user.id, now) if user else None

        if user is None:
            self._reject("user_not_found")
        if session is None:
            self._reject("session_not_active")
        if not self._hasher.verify(refresh_token, session.token_hash):
            self._reject("secret_mismatch")

        access_token, new_refresh_token, new_session = self._issue(user)
        with self._store.transaction() as uow:
            if not uow.sessions.revoke_if_active(session.id):
                self._reject("rotation_lost_race")
            uow.sessions.create(new_session)

        logger.info("Refresh user_id=%s rotated %s -> %s", user.id, session.id, new_session.id)
        return TokenPair(access_token=access_token, refresh_token=new_refresh_token)

    def logout(self, user_id: str) -> int:
        """End every active session for user_id. Returns the number of sessions revoked."""
        with self._store.transaction() as uow:
            revoked = uow.sessions.revoke_all_for_user(user_id)
        logger.info("Logout user_id=%s revoked=%d", user_id, revoked)
        return revoked

    def get_user_by_id(self, user_id: str) -> dict | None:
        """Public projection of a user, or None. Pure read."""
        with self._store.transaction() as uow:
            user = uow.users.get_by_id(user_id)
        return public_user(user) if user is not None else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User) -> tuple[str, str, RefreshSession]:
        """Sign both tokens for user and build the unsaved session row for the refresh token."""
        now = self._clock()
        claims = TokenClaims.for_user(user)
        session_id = str(uuid4())
        access_token = self._codec.sign_access(claims)
        refresh_token = self._codec.sign_refresh(claims, session_id)
        session = RefreshSession(
            id=session_id,
            user_id=str(user.id),
            token_hash=self._hasher.hash(refresh_token),
            expires_at=self._codec.refresh_expiry(now),
            created_at=now,
        )
        return access_token, refresh_token, session

    @staticmethod
    def _reject(reason: str) -> NoReturn:
        logger.info("Refresh rejected: %s", reason)
        raise InvalidRefreshToken()
