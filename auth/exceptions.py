"""Typed exceptions for auth failures."""

from datetime import datetime

from core.exceptions import DomainError, NotFoundError, ValidationError
from utils.timezone import minutes_until


class AuthError(DomainError):
    """Base class for authentication/authorization errors."""


class InvalidCredentialsError(AuthError):
    """
    Email/username or password is wrong, or the account is unknown or inactive.

    The message never says which, to prevent account enumeration. When the
    account is close to lockout, remaining_attempts is set and the message
    warns about it.
    """

    def __init__(self, remaining_attempts: int | None = None):
        self.remaining_attempts = remaining_attempts
        message = "Invalid email or password"
        if remaining_attempts is not None:
            plural = "s" if remaining_attempts != 1 else ""
            message = (
                f"Invalid email or password. {remaining_attempts} attempt{plural} "
                "remaining before account lockout."
            )
        super().__init__(message)


class PasswordNotSetError(AuthError):
    """Business exists but has never set a password."""

    def __init__(self):
        super().__init__(
            "Please set up your password first or use the password reset link."
        )


class AccountLockedError(AuthError):
    """Too many failed passwords. Login refused until locked_until."""

    def __init__(self, locked_until: datetime):
        self.locked_until = locked_until
        self.minutes_remaining = max(minutes_until(locked_until), 1)
        plural = "s" if self.minutes_remaining != 1 else ""
        super().__init__(
            "Too many failed login attempts. Account is locked for "
            f"{self.minutes_remaining} more minute{plural}.",
            details={"lockedUntil": locked_until.isoformat()},
        )


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int, limit: int | None = None):
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        super().__init__(
            f"Too many attempts. Please try again in {retry_after_seconds} seconds.",
            details={"retryAfter": retry_after_seconds},
        )


class InvalidTokenError(AuthError):
    """
    Token is invalid, expired, or already used.

    Used for magic link, password reset and session tokens.
    """


class SessionExpiredError(AuthError):
    """Session is missing or expired and the user must re-authenticate."""


class CsrfValidationError(AuthError):
    """Anti-forgery token missing or does not match the session."""


class AccountInactiveError(NotFoundError):
    """Business behind a token is gone or no longer active."""


class WeakPasswordError(ValidationError):
    """Password fails the strength policy. Carries errors and suggestions."""

    def __init__(self, errors: list[str], suggestions: list[str]):
        self.errors = errors
        self.suggestions = suggestions
        super().__init__(
            "Password does not meet requirements",
            details={"errors": errors, "suggestions": suggestions},
        )
