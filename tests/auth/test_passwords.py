"""Tests for auth/passwords.py - hashing and strength policy."""

import pytest

from auth.passwords import (
    MAX_PASSWORD_LENGTH,
    generate_secure_password,
    validate_password_strength,
)

# Must match conftest.py
STRONG_PASSWORD = "Corr3ct-Horse-Battery!"


class TestPasswordHasher:

    def test_hash_verifies(self, hasher):
        hashed = hasher.hash(STRONG_PASSWORD)
        assert hashed != STRONG_PASSWORD
        assert hasher.verify(STRONG_PASSWORD, hashed)

    def test_wrong_password_fails(self, hasher):
        hashed = hasher.hash(STRONG_PASSWORD)
        assert not hasher.verify("Wrong-Password-123", hashed)

    def test_hashes_are_salted(self, hasher):
        assert hasher.hash(STRONG_PASSWORD) != hasher.hash(STRONG_PASSWORD)

    def test_long_passwords_are_not_truncated(self, hasher):
        """Passwords differing after byte 72 must not collide."""
        base = "Aa1!" + "x" * 80
        hashed = hasher.hash(base + "1")
        assert not hasher.verify(base + "2", hashed)

    def test_rejects_short_password(self, hasher):
        with pytest.raises(ValueError, match="at least"):
            hasher.hash("short")

    def test_rejects_overlong_password(self, hasher):
        with pytest.raises(ValueError, match="at most"):
            hasher.hash("A1!a" * MAX_PASSWORD_LENGTH)

    def test_malformed_hash_never_matches(self, hasher):
        assert hasher.verify(STRONG_PASSWORD, "not-a-bcrypt-hash") is False


class TestValidatePasswordStrength:

    def test_strong_password_is_valid(self):
        result = validate_password_strength(STRONG_PASSWORD)
        assert result.is_valid
        assert result.errors == []

    def test_empty_password(self):
        result = validate_password_strength("")
        assert not result.is_valid
        assert result.suggestions == ["Choose a strong, unique password"]

    def test_each_character_class_required(self):
        result = validate_password_strength("alllowercaseletters")
        assert not result.is_valid
        assert "Password must contain at least one uppercase letter" in result.errors
        assert "Password must contain at least one number" in result.errors
        assert "Password must contain at least one special character" in result.errors

    def test_common_password_only_suggests(self):
        """Weak patterns advise but do not block an otherwise valid password."""
        result = validate_password_strength("MyPassword-2024!")
        assert result.is_valid
        assert "Avoid common passwords" in result.suggestions


class TestGenerateSecurePassword:

    def test_generated_passwords_pass_policy(self):
        for _ in range(20):
            password = generate_secure_password()
            assert len(password) == 16
            assert validate_password_strength(password).is_valid

    def test_generated_passwords_differ(self):
        assert generate_secure_password() != generate_secure_password()

    def test_rejects_short_length(self):
        with pytest.raises(ValueError):
            generate_secure_password(8)
