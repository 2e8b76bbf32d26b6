"""
API request and response models for folioauth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Shape validation (the ValidationFailure category) happens here, before any
service is called: the services assume well-formed input.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from auth.strength import validate_password

OTP_PATTERN = r"^\d{6}$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RiskProfileEnum(str, Enum):
    low = "low"
    moderate = "moderate"
    high = "high"


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Shared validators
# ---------------------------------------------------------------------------


def _lower_email(value: str) -> str:
    return str(value).strip().lower()


def _check_password_policy(value: str) -> str:
    errors = validate_password(value)
    if errors:
        raise ValueError("; ".join(errors))
    return value


# Lowercased after EmailStr validation; every lookup in auth/ assumes this form.
NormalizedEmail = Annotated[EmailStr, AfterValidator(_lower_email)]

# Length bounds plus the account policy (upper, lower, digit).
PolicyPassword = Annotated[str, Field(min_length=8, max_length=100), AfterValidator(_check_password_policy)]

# Names are trimmed. Passwords never are: login compares the exact string that was hashed.
PersonName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    first_name: PersonName
    last_name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]] = None
    email: NormalizedEmail
    password: PolicyPassword
    risk_profile: RiskProfileEnum = RiskProfileEnum.moderate


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. No policy check -- any string may be tried."""

    email: NormalizedEmail
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=4096)


class PasswordResetRequest(BaseModel):
    """Request body for POST /api/v1/auth/password-reset/request."""

    email: NormalizedEmail


class PasswordResetConfirm(BaseModel):
    """Request body for POST /api/v1/auth/password-reset/confirm."""

    email: NormalizedEmail
    code: str = Field(pattern=OTP_PATTERN, description="6-digit code from the reset message.")
    new_password: PolicyPassword


class PasswordStrengthRequest(BaseModel):
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user projection. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    first_name: str
    last_name: Optional[str]
    email: str
    risk_profile: RiskProfileEnum
    role: RoleEnum
    created_at: Optional[str]
    updated_at: Optional[str]


class AuthResponse(BaseModel):
    """Response for signup and login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class TokenPairResponse(BaseModel):
    """Response for refresh. Carries no user -- refresh does not re-read the profile."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Logged out."
    revoked_sessions: int


class ResetAcceptedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool = True
    message: str = "If an account with this email exists, a reset code has been sent."


class ResetCompletedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Password has been reset. Please log in with your new password."


class StrengthRequirements(BaseModel):
    length: bool
    uppercase: bool
    lowercase: bool
    numbers: bool
    symbols: bool
    no_common_patterns: bool


class PasswordStrengthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    level: str
    requirements: StrengthRequirements
    suggestions: list[str]


class CodeStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    active: int
    expired: int
    consumed: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
