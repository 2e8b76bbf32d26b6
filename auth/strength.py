"""
auth/strength.py -- Password strength scoring and minimum-policy checks.

Pure functions, no I/O. analyze_password_strength() drives the
password-strength endpoint; validate_password() is the policy the signup and
reset request models enforce before anything reaches the services.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field

MIN_LENGTH = 8

_COMMON_PASSWORDS = (
    "password",
    "123456",
    "123456789",
    "qwerty",
    "abc123",
    "password123",
    "admin",
    "letmein",
    "welcome",
    "monkey",
    "1234567890",
    "password1",
    "qwerty123",
    "dragon",
    "master",
)

_SYMBOLS_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
_REPEAT_RE = re.compile(r"(.)\1{2,}")


@dataclass
class Requirements:
    length: bool
    uppercase: bool
    lowercase: bool
    numbers: bool
    symbols: bool
    no_common_patterns: bool


@dataclass
class StrengthResult:
    score: int  # 0-100
    level: str  # weak | fair | good | strong | very-strong
    requirements: Requirements
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def check_requirements(password: str) -> Requirements:
    lowered = password.lower()
    return Requirements(
        length=len(password) >= MIN_LENGTH,
        uppercase=any(ch.isupper() for ch in password),
        lowercase=any(ch.islower() for ch in password),
        numbers=any(ch.isdigit() for ch in password),
        symbols=bool(_SYMBOLS_RE.search(password)),
        no_common_patterns=not any(common in lowered for common in _COMMON_PASSWORDS),
    )


def _entropy(password: str) -> float:
    """log2(distinct_chars ** length); 0 for passwords with fewer than two distinct chars."""
    distinct = len(set(password))
    if distinct < 2:
        return 0.0
    return len(password) * math.log2(distinct)


def _has_sequence(password: str) -> bool:
    """True for three consecutive ascending code points (abc, 123)."""
    lowered = password.lower()
    for i in range(len(lowered) - 2):
        a, b, c = (ord(ch) for ch in lowered[i : i + 3])
        if b == a + 1 and c == b + 1:
            return True
    return False


def _score(password: str, req: Requirements) -> int:
    score = 0

    if len(password) >= 12:
        score += 30
    elif len(password) >= 10:
        score += 25
    elif len(password) >= 8:
        score += 20
    elif len(password) >= 6:
        score += 10

    score += 8 if req.uppercase else 0
    score += 8 if req.lowercase else 0
    score += 8 if req.numbers else 0
    score += 16 if req.symbols else 0

    if req.no_common_patterns:
        score += 15

    entropy = _entropy(password)
    if entropy > 4:
        score += 15
    elif entropy > 3:
        score += 10
    elif entropy > 2:
        score += 5

    return max(0, min(100, score))


def _level(score: int) -> str:
    if score >= 90:
        return "very-strong"
    if score >= 75:
        return "strong"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "weak"


def _suggestions(password: str, req: Requirements) -> list[str]:
    suggestions: list[str] = []
    if not req.length:
        suggestions.append(f"Use at least {MIN_LENGTH} characters")
    if not req.uppercase:
        suggestions.append("Add uppercase letters (A-Z)")
    if not req.lowercase:
        suggestions.append("Add lowercase letters (a-z)")
    if not req.numbers:
        suggestions.append("Add numbers (0-9)")
    if not req.symbols:
        suggestions.append("Add special characters (!@#$%^&*)")
    if not req.no_common_patterns:
        suggestions.append("Avoid common words and patterns")
    if len(password) < 12:
        suggestions.append("Consider using 12+ characters for better security")
    if _REPEAT_RE.search(password):
        suggestions.append("Avoid repeating the same character multiple times")
    if _has_sequence(password):
        suggestions.append("Avoid sequential patterns (123, abc, etc.)")
    return suggestions


def analyze_password_strength(password: str) -> StrengthResult:
    """Score a candidate password and explain how to improve it."""
    req = check_requirements(password)
    score = _score(password, req)
    return StrengthResult(score=score, level=_level(score), requirements=req, suggestions=_suggestions(password, req))


def validate_password(password: str) -> list[str]:
    """Return the policy violations for password. An empty list means it is acceptable.

    The account policy requires length, upper, lower, and digit. Symbols and
    common-word checks only affect the strength score.
    """
    req = check_requirements(password)
    errors: list[str] = []
    if not req.length:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if not req.uppercase:
        errors.append("Password must contain at least one uppercase letter")
    if not req.lowercase:
        errors.append("Password must contain at least one lowercase letter")
    if not req.numbers:
        errors.append("Password must contain at least one number")
    return errors
