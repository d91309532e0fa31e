"""Self-service password reset for business owners."""

import logging
import secrets
from datetime import timedelta

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import AccountInactiveError, InvalidTokenError, WeakPasswordError
from auth.passwords import PasswordHasher, validate_password_strength
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger, log_best_effort
from auth.service import devlinks_logger, normalize_email
from auth.session import SessionManager
from auth.types import AuthenticatedOwner, PasswordResetToken
from clients.email_client import Mailer
from core.exceptions import ValidationError
from utils.timezone import is_past, now_utc

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = (
    "If an account exists with this email, you will receive a password reset link."
)


class PasswordResetService:
    """
    Request, check and complete password resets.

    Reset tokens are single use and expire after
    config.password_reset_expiry_minutes. Completing a reset logs the owner in.
    """

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        rate_limiter: RateLimiter,
        mailer: Mailer,
        security_logger: SecurityLogger,
        hasher: PasswordHasher,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter
        self._mailer = mailer
        self._security_logger = security_logger
        self._hasher = hasher

    def request_reset(self, email: str, ip_address: str | None) -> str:
        """
        Email a reset link if an active business owns email.

        Returns the same message whether or not one does.

        Raises:
            ValidationError: Malformed email
            RateLimitedError: Too many reset requests for this email
        """
        email = normalize_email(email)
        self._rate_limiter.hit(email)

        business = self._auth_db.get_active_business_by_email(email)
        if business is None:
            logger.warning(f"Password reset requested for unknown business: {email}")
            return RESET_REQUESTED_MESSAGE

        now = now_utc()
        token = PasswordResetToken(
            token=secrets.token_urlsafe(32),
            email=email,
            created_at=now,
            expires_at=now + timedelta(minutes=self._config.password_reset_expiry_minutes),
            used=False,
            ip_address=ip_address,
        )
        self._auth_db.store_password_reset_token(token)

        log_best_effort(
            self._security_logger,
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=email,
            ip_address=ip_address,
        )

        link = f"{self._config.site_url}/owner/reset-password?token={token.token}"
        sent = self._mailer.send_password_reset(
            to=email,
            contact_name=business.contact_name,
            business_name=business.name,
            link=link,
            expires_in_minutes=self._config.password_reset_expiry_minutes,
        )
        if not sent:
            logger.warning(f"Password reset email not delivered to {email}")

        if not self._config.is_production:
            devlinks_logger.info(f"Password reset link for {email}: {link}")

        return RESET_REQUESTED_MESSAGE

    def _load_usable_token(self, token: str) -> PasswordResetToken:
        record = self._auth_db.get_password_reset_token(token)
        if record is None:
            raise InvalidTokenError("Invalid token")
        if record.used:
            raise InvalidTokenError("Token already used")
        if is_past(record.expires_at):
            raise InvalidTokenError("Token expired")
        return record

    def check_token(self, token: str | None) -> str:
        """
        Confirm a token is usable without consuming it.

        Returns:
            The email the token is bound to.

        Raises:
            InvalidTokenError: Unknown, used or expired token
            AccountInactiveError: Business is gone or inactive
        """
        if not token:
            raise InvalidTokenError("Invalid token")

        record = self._load_usable_token(token)

        if self._auth_db.get_active_business_by_email(record.email) is None:
            raise AccountInactiveError("Business account not found or inactive")

        return record.email

    def complete_reset(
        self,
        token: str | None,
        password: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedOwner:
        """
        Set a new password from a reset token and log the owner in.

        Raises:
            ValidationError: Missing token or password
            WeakPasswordError: Password fails the strength policy
            InvalidTokenError: Unknown, used or expired token
            AccountInactiveError: Business is gone or inactive
        """
        if not token:
            raise ValidationError("Reset token is required")
        if not password:
            raise ValidationError("Password is required")

        strength = validate_password_strength(password)
        if not strength.is_valid:
            raise WeakPasswordError(strength.errors, strength.suggestions)

        record = self._load_usable_token(token)
        email = record.email.lower()

        business = self._auth_db.get_active_business_by_email(email)
        if business is None:
            raise AccountInactiveError("Business account not found or inactive")

        password_hash = self._hasher.hash(password)

        # Another request may have used the token since it was read above
        if self._auth_db.consume_password_reset_token(token, ip_address) is None:
            log_best_effort(
                self._security_logger,
                SecurityEvent.PASSWORD_RESET_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "token_race"},
            )
            raise InvalidTokenError("Token already used")

        self._auth_db.upsert_credential(email, password_hash)

        log_best_effort(
            self._security_logger,
            SecurityEvent.PASSWORD_RESET_COMPLETED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"Password reset completed: {email}")

        session = self._session_manager.create_session(email, ip_address, user_agent)
        return AuthenticatedOwner(business=business, session=session)
