"""
api/routes/v1/auth.py -- Credential and session REST endpoints.

Routes:
  POST /api/v1/auth/signup                   -- create account; returns token pair + user
  POST /api/v1/auth/login                    -- password login; returns token pair + user
  POST /api/v1/auth/refresh                  -- rotate refresh token; returns new pair
  POST /api/v1/auth/logout                   -- revoke every session of the caller (requires auth)
  GET  /api/v1/auth/me                       -- current user (requires auth)
  POST /api/v1/auth/password-reset/request   -- issue reset code; always 202 accepted
  POST /api/v1/auth/password-reset/confirm   -- verify code, set new password
  POST /api/v1/auth/password-strength        -- score a candidate password (public)
  GET  /api/v1/auth/reset-codes/stats        -- reset code counts (admin only)

Security:
  [H1] login, signup, refresh and both reset routes are rate-limited per IP.
  [H2] Cache-Control: no-store on every response that carries a token.
  [H3] Domain failures are raised as AuthError and rendered by the handler in
       api/main.py. Routes never build error bodies for merged categories, so
       "no such user" and "wrong password" cannot diverge here.

Handlers are plain `def`: bcrypt and SQLite calls block, and FastAPI runs sync
handlers in its worker thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthResponse,
    CodeStatsResponse,
    LoginRequest,
    LogoutResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    RefreshRequest,
    ResetAcceptedResponse,
    ResetCompletedResponse,
    SignupRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_current_user, require_admin
from auth.models import AuthResult
from auth.reset import CredentialResetService
from auth.service import AuthService
from auth.strength import analyze_password_strength

# Auth policy:
# - POST /auth/signup, /auth/login, /auth/refresh:        public (credentials in body)
# - POST /auth/password-reset/request, .../confirm:       public (code is the credential)
# - POST /auth/password-strength:                         public, no side effects
# - POST /auth/logout, GET /auth/me:                      requires auth (get_current_user)
# - GET  /auth/reset-codes/stats:                         requires admin (require_admin)
router = APIRouter()


def _auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _reset_service(request: Request) -> CredentialResetService:
    return request.app.state.reset_service


def _access_ttl(request: Request) -> int:
    return request.app.state.settings.access_token_ttl_seconds


def _auth_response(request: Request, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=_access_ttl(request),
        user=UserResponse(**result.user),
    )


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)  # [H1] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, response: Response, body: SignupRequest) -> AuthResponse:
    """Create an account. 409 if the email is already registered."""
    result = _auth_service(request).signup(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        risk_profile=body.risk_profile.value,
    )
    response.headers["Cache-Control"] = "no-store"  # [H2]
    return _auth_response(request, result)


@limiter.limit(auth_rate_limit)  # [H1]
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Adds a session; existing sessions on other devices stay valid. Unknown
    email and wrong password both produce 401 invalid_credentials.
    """
    result = _auth_service(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [H2]
    return _auth_response(request, result)


@limiter.limit(auth_rate_limit)  # [H1]
@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenPairResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    pair = _auth_service(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [H2]
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type="bearer",  # noqa: S106 # nosec B106
        expires_in=_access_ttl(request),
    )


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, current_user: dict = Depends(get_current_user)) -> LogoutResponse:
    """End every active session of the caller, not just this device's."""
    revoked = _auth_service(request).logout(current_user["id"])
    return LogoutResponse(revoked_sessions=revoked)


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: dict = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated user's profile."""
    return UserResponse(**current_user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)  # [H1]
@router.post("/auth/password-reset/request", response_model=ResetAcceptedResponse, status_code=202)
def request_password_reset(request: Request, body: PasswordResetRequest) -> ResetAcceptedResponse:
    """Send a reset code if the account exists. The response is identical either way."""
    _reset_service(request).request_reset(body.email)
    return ResetAcceptedResponse()


@limiter.limit(auth_rate_limit)  # [H1]
@router.post("/auth/password-reset/confirm", response_model=ResetCompletedResponse)
def confirm_password_reset(request: Request, body: PasswordResetConfirm) -> ResetCompletedResponse:
    """Verify the code and set the new password. Signs the account out everywhere."""
    _reset_service(request).verify_and_reset(body.email, body.code, body.new_password)
    return ResetCompletedResponse()


@router.get("/auth/reset-codes/stats", response_model=CodeStatsResponse)
def reset_code_stats(request: Request, current_user: dict = Depends(require_admin)) -> CodeStatsResponse:
    """Reset code counts for monitoring. Admin only."""
    return CodeStatsResponse(**_reset_service(request).code_stats())


# ---------------------------------------------------------------------------
# Password strength
# ---------------------------------------------------------------------------


@router.post("/auth/password-strength", response_model=PasswordStrengthResponse)
def password_strength(body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    """Score a candidate password and list improvements. Nothing is stored."""
    return PasswordStrengthResponse(**analyze_password_strength(body.password).to_dict())
