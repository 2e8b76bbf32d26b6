"""
auth/reset.py -- CredentialResetService: rate-limited one-time codes and
verified password reset.

Security design decisions:
  [R1] request_reset() returns the same {"accepted": True} for known and
       unknown emails. The unknown-email path spends one bcrypt hash so both
       paths cost the same, and touches nothing else.

  [R2] At most otp_max_requests codes per email inside a sliding
       otp_window_seconds window. Count-then-insert runs in one single-writer
       transaction, so two concurrent requests cannot both pass a stale count.

  [R3] Codes are 6 digits from the secrets module and stored only as bcrypt
       hashes. The raw code leaves this service exactly once, through the
       injected delivery callable, after the row is committed.

  [R4] A successful reset stores the new password hash, stamps the code
       consumed, and revokes every active session for the user in one
       transaction. Consuming is conditional on the code still being
       unconsumed, so a code can complete at most one reset.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from auth.delivery import CodeDelivery, LogCodeDelivery
from auth.errors import InvalidCode, InvalidOrExpiredCode, RateLimited
from auth.hashing import CredentialHasher
from auth.models import OneTimeCode, normalize_email
from auth.store import AuthStore
from core.clock import Clock, utcnow
from core.config import Settings

logger = logging.getLogger("folioauth.reset")

CODE_DIGITS = 6


def generate_code(digits: int = CODE_DIGITS) -> str:
    """Cryptographically random numeric code, zero-padded to digits."""
    return f"{secrets.randbelow(10**digits):0{digits}d}"


class CredentialResetService:
    """Issues reset codes and applies verified password resets."""

    def __init__(
        self,
        store: AuthStore,
        hasher: CredentialHasher,
        delivery: CodeDelivery | None = None,
        code_ttl: timedelta = timedelta(minutes=15),
        max_requests: int = 3,
        window: timedelta = timedelta(minutes=15),
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._delivery = delivery or LogCodeDelivery()
        self.code_ttl = code_ttl
        self.max_requests = max_requests
        self.window = window
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: AuthStore,
        hasher: CredentialHasher,
        settings: Settings,
        delivery: CodeDelivery | None = None,
        clock: Clock = utcnow,
    ) -> "CredentialResetService":
        return cls(
            store,
            hasher,
            delivery=delivery,
            code_ttl=timedelta(seconds=settings.otp_ttl_seconds),
            max_requests=settings.otp_max_requests,
            window=timedelta(seconds=settings.otp_window_seconds),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def request_reset(self, email: str) -> dict:
        """Issue and deliver a reset code if the account exists [R1][R2][R3].

        Raises RateLimited when the email already has max_requests codes in
        the current window. The API layer decides how much of that to reveal.
        """
        email = normalize_email(email)
        with self._store.transaction() as uow:
            user = uow.users.get_by_email(email)
        if user is None:
            self._hasher.hash(generate_code())
            logger.info("Reset requested for unknown email")
            return {"accepted": True}

        code = generate_code()
        code_hash = self._hasher.hash(code)
        now = self._clock()
        with self._store.transaction() as uow:
            recent = uow.codes.count_since(email, now - self.window)
            if recent >= self.max_requests:
                logger.warning("Reset rate limit hit user_id=%s (%d in window)", user.id, recent)
                raise RateLimited()
            uow.codes.create(
                OneTimeCode(email=email, code_hash=code_hash, expires_at=now + self.code_ttl, created_at=now)
            )

        self._delivery(email, code, int(self.code_ttl.total_seconds() // 60))
        logger.info("Reset code issued user_id=%s", user.id)
        return {"accepted": True}

    def verify_and_reset(self, email: str, code: str, new_password: str) -> dict:
        """Verify the newest usable code for email and replace the password [R4].

        Raises InvalidOrExpiredCode when no usable code exists (none issued,
        expired, or already consumed) and InvalidCode when the code does not
        match.
        """
        email = normalize_email(email)
        now = self._clock()
        with self._store.transaction() as uow:
            record = uow.codes.latest_usable(email, now)
        if record is None:
            logger.info("Reset rejected: no usable code")
            raise InvalidOrExpiredCode()
        if not self._hasher.verify(code, record.code_hash):
            logger.info("Reset rejected: code mismatch")
            raise InvalidCode()

        new_hash = self._hasher.hash(new_password)
        with self._store.transaction() as uow:
            user = uow.users.get_by_email(email)
            if user is None or not uow.codes.mark_consumed(record.id, now):
                logger.info("Reset rejected: code consumed concurrently or account gone")
                raise InvalidOrExpiredCode()
            uow.users.update_password(user.id, new_hash, now)
            revoked = uow.sessions.revoke_all_for_user(user.id)

        logger.info("Password reset user_id=%s revoked_sessions=%d", user.id, revoked)
        return {"success": True}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_codes(self) -> int:
        """Delete expired codes that no longer count toward any rate-limit window."""
        now = self._clock()
        with self._store.transaction() as uow:
            removed = uow.codes.purge_expired(now, keep_since=now - self.window)
        if removed:
            logger.info("Purged %d expired reset codes", removed)
        return removed

    def code_stats(self) -> dict[str, int]:
        """Total, active, expired, and consumed code counts for monitoring."""
        with self._store.transaction() as uow:
            return uow.codes.stats(self._clock())
