"""Unit tests for auth/strength.py -- password scoring and policy.

Covers:
- requirement flags
- score bounds and level thresholds on representative passwords
- suggestions for repeats, sequences, common words
- validate_password() policy messages
"""

import pytest

from auth.strength import analyze_password_strength, check_requirements, validate_password


class TestRequirements:
    def test_all_met(self) -> None:
        req = check_requirements("Sup3rSecret!")
        assert req.length and req.uppercase and req.lowercase and req.numbers and req.symbols
        assert req.no_common_patterns

    def test_common_word_is_flagged_case_insensitively(self) -> None:
        assert check_requirements("MyPASSWORD99").no_common_patterns is False

    def test_short_lowercase(self) -> None:
        req = check_requirements("abc")
        assert not req.length
        assert not req.uppercase
        assert req.lowercase
        assert not req.numbers
        assert not req.symbols


class TestScore:
    def test_strong_password_scores_top(self) -> None:
        result = analyze_password_strength("Sup3rSecret!")
        assert result.score == 100
        assert result.level == "very-strong"

    def test_common_password_is_fair_at_best(self) -> None:
        result = analyze_password_strength("password")
        assert result.level in ("weak", "fair")
        assert "Avoid common words and patterns" in result.suggestions

    def test_single_repeated_char_is_weak(self) -> None:
        result = analyze_password_strength("aaa")
        assert result.level == "weak"
        assert "Avoid repeating the same character multiple times" in result.suggestions

    def test_sequences_are_flagged(self) -> None:
        result = analyze_password_strength("Xyz12345!Q")
        assert "Avoid sequential patterns (123, abc, etc.)" in result.suggestions

    @pytest.mark.parametrize("password", ["a", "aB3$", "correct horse battery staple", "Zz9!" * 30])
    def test_score_is_bounded(self, password: str) -> None:
        assert 0 <= analyze_password_strength(password).score <= 100

    def test_to_dict_shape(self) -> None:
        data = analyze_password_strength("Sup3rSecret!").to_dict()
        assert set(data) == {"score", "level", "requirements", "suggestions"}
        assert data["requirements"]["symbols"] is True


class TestValidatePassword:
    def test_accepts_policy_password(self) -> None:
        assert validate_password("Abcdefg1") == []

    def test_symbols_not_required(self) -> None:
        assert validate_password("NoSymbols123") == []

    def test_reports_each_missing_class(self) -> None:
        errors = validate_password("short")
        assert "Password must be at least 8 characters long" in errors
        assert "Password must contain at least one uppercase letter" in errors
        assert "Password must contain at least one number" in errors
        assert "Password must contain at least one lowercase letter" not in errors
