"""Password hashing (bcrypt with SHA-256 pre-hash) and strength policy.

Bcrypt truncates inputs at 72 bytes; pre-hashing with SHA-256 yields a
fixed-length input so long passwords are not silently truncated.
"""

import base64
import hashlib
import re
import secrets
import string

import bcrypt

from auth.types import PasswordStrength

MIN_PASSWORD_LENGTH = 12
MAX_PASSWORD_LENGTH = 128
SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

_SPECIAL_RE = re.compile(f"[{re.escape(SPECIAL_CHARS)}]")

# Patterns that only produce suggestions, never errors
_WEAK_PATTERNS = [
    (re.compile(r"^(.)\1+$"), "Password cannot be all the same character"),
    (re.compile(r"^(012|123|234|345|456|567|678|789|890)+"), "Avoid sequential numbers"),
    (
        re.compile(
            r"^(abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz)+",
            re.IGNORECASE,
        ),
        "Avoid sequential letters",
    ),
    (re.compile(r"password|12345|qwerty|admin|letmein", re.IGNORECASE), "Avoid common passwords"),
]


def _prehash(password: str) -> bytes:
    """SHA-256 pre-hash to avoid bcrypt's 72-byte truncation."""
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


class PasswordHasher:
    """One-way hash + verify. rounds is the bcrypt cost factor (2^rounds)."""

    def __init__(self, rounds: int = 12):
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """
        Return bcrypt hash of password.

        Raises ValueError outside the allowed length range.
        """
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password) > MAX_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_LENGTH} characters")

        hashed = bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds=self._rounds))
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True if password matches password_hash. Malformed hashes never match."""
        try:
            return bool(bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8")))
        except (ValueError, TypeError):
            return False


def validate_password_strength(password: str) -> PasswordStrength:
    """Check length and character classes; errors block, suggestions advise."""
    errors: list[str] = []
    suggestions: list[str] = []

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if password and len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")

    if not password:
        return PasswordStrength(
            is_valid=False,
            errors=errors,
            suggestions=["Choose a strong, unique password"],
        )

    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
        suggestions.append("Add an uppercase letter (A-Z)")

    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
        suggestions.append("Add a lowercase letter (a-z)")

    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
        suggestions.append("Add a number (0-9)")

    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
        suggestions.append(f"Add a special character ({SPECIAL_CHARS})")

    for pattern, message in _WEAK_PATTERNS:
        if pattern.search(password):
            suggestions.append(message)

    return PasswordStrength(is_valid=not errors, errors=errors, suggestions=suggestions)


def generate_secure_password(length: int = 16) -> str:
    """Random password that always satisfies validate_password_strength."""
    if length < MIN_PASSWORD_LENGTH:
        raise ValueError(f"length must be at least {MIN_PASSWORD_LENGTH}")

    pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SPECIAL_CHARS]
    alphabet = "".join(pools)

    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]

    rng = secrets.SystemRandom()
    rng.shuffle(chars)
    return "".join(chars)
