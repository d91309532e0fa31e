"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    InvalidCredentialsError,
    PasswordNotSetError,
    AccountLockedError,
    RateLimitedError,
    InvalidTokenError,
    SessionExpiredError,
    CsrfValidationError,
    AccountInactiveError,
    WeakPasswordError,
)
from auth.types import (
    Business,
    Credential,
    AdminUser,
    Session,
    MagicLinkToken,
    PasswordResetToken,
    AuthenticatedOwner,
    AuthenticatedAdmin,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.passwords import PasswordHasher, validate_password_strength, generate_secure_password
from auth.rate_limiter import RateLimiter, InMemoryCounterStore, ValkeyCounterStore
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager, SessionPolicy
from auth.csrf import CsrfProtector
from auth.service import AuthService
from auth.password_reset import PasswordResetService
from auth.admin_service import AdminAuthService
from auth.security_middleware import OwnerAuthMiddleware, AdminAuthMiddleware
