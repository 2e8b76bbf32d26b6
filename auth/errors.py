"""
auth/errors.py -- Error taxonomy for the credential subsystem.

Callers branch on `code`, never on message text. Every error carries a fixed
public message; merged categories (InvalidCredentials, InvalidRefreshToken)
never vary it, so the response cannot reveal which sub-check failed. The
internal reason for a merged failure is logged by the service, not attached
to the exception.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every domain failure raised by AuthService and CredentialResetService."""

    code: str = "auth_error"
    message: str = "Authentication failed."
    retryable: bool = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message is not None:
            self.message = message


class ConflictError(AuthError):
    code = "conflict"
    message = "User already exists with this email."


class InvalidCredentials(AuthError):
    """Login failure. Covers both "no such user" and "wrong password"."""

    code = "invalid_credentials"
    message = "Invalid email or password."

    def __init__(self) -> None:
        super().__init__()


class InvalidRefreshToken(AuthError):
    """Refresh failure. Covers bad signature, expiry, missing user, revoked or unknown session, and secret mismatch."""

    code = "invalid_refresh_token"
    message = "Invalid refresh token."

    def __init__(self) -> None:
        super().__init__()


class InvalidOrExpiredCode(AuthError):
    code = "invalid_or_expired_code"
    message = "Invalid or expired code. Please request a new one."


class InvalidCode(AuthError):
    code = "invalid_code"
    message = "Invalid code. Please check your code and try again."


class RateLimited(AuthError):
    code = "rate_limited"
    message = "Too many requests. Please try again later."


class Unavailable(AuthError):
    """Store timeout or connection failure. Retryable by the caller, never retried internally."""

    code = "unavailable"
    message = "Service temporarily unavailable. Please retry."
    retryable = True


# ---------------------------------------------------------------------------
# Token codec errors
#
# Raised by TokenCodec only. AuthService collapses both into
# InvalidRefreshToken; the access-token dependency maps both to 401 but logs
# tampering (InvalidToken) louder than expiry.
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class InvalidToken(TokenError):
    """Malformed token, bad signature, wrong token kind, or missing claims."""


class ExpiredToken(TokenError):
    """Well-formed, correctly signed token past its expiry."""

    code = "expired_token"
    message = "Token expired."
