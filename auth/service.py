"""Authentication service - business owner password, magic link and logout flows."""

import logging
import secrets
from datetime import timedelta

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    PasswordNotSetError,
    RateLimitedError,
)
from auth.passwords import PasswordHasher
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger, log_best_effort
from auth.session import SessionManager
from auth.types import AuthenticatedOwner, Business, MagicLinkToken, Session
from clients.email_client import Mailer
from core.exceptions import ValidationError
from utils.timezone import is_past, now_utc

logger = logging.getLogger(__name__)

# Development-only channel for links that would otherwise only be emailed
devlinks_logger = logging.getLogger("gifty.devlinks")


def normalize_email(email: str | None) -> str:
    """
    Trim and lowercase email.

    Raises:
        ValidationError: If email is empty or has no @
    """
    if not email or "@" not in email:
        raise ValidationError("Valid email is required")
    return email.strip().lower()


class AuthService:
    """
    Orchestrates business owner authentication.

    Handles:
    - Password login (rate limited, with persisted lockout)
    - Magic link requests (with enumeration protection)
    - Magic link verification
    - Logout
    """

    MAGIC_LINK_SENT_MESSAGE = "Magic link sent! Check your email."

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        rate_limiter: RateLimiter,
        magic_link_limiter: RateLimiter,
        mailer: Mailer,
        security_logger: SecurityLogger,
        hasher: PasswordHasher,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter
        self._magic_link_limiter = magic_link_limiter
        self._mailer = mailer
        self._security_logger = security_logger
        self._hasher = hasher

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager

    def _record_failure(self, ip_address: str | None, email: str) -> None:
        self._rate_limiter.record_failure(ip_address, email)

    def login_with_password(
        self,
        email: str,
        password: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedOwner:
        """
        Log in with email and password.

        Flow:
        1. Validate and normalize input
        2. Check IP and email rate limits before any lookup
        3. Look up active business (generic error if missing)
        4. Look up credential (PasswordNotSetError if missing)
        5. Refuse while locked
        6. Verify password; on failure count it and maybe lock
        7. Reset counters, create session

        Raises:
            ValidationError: Missing email or password
            RateLimitedError: Too many attempts from this IP or for this email
            InvalidCredentialsError: Unknown business or wrong password
            PasswordNotSetError: Business has no credential yet
            AccountLockedError: Account is locked
        """
        email = normalize_email(email)
        if not password:
            raise ValidationError("Password is required")

        try:
            self._rate_limiter.check(ip_address, email)
        except RateLimitedError:
            log_best_effort(
                self._security_logger,
                SecurityEvent.RATE_LIMITED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"flow": "password_login"},
            )
            raise

        business = self._auth_db.get_active_business_by_email(email)
        if business is None:
            self._record_failure(ip_address, email)
            logger.warning(f"Login attempt for unknown or inactive business: {email}")
            log_best_effort(
                self._security_logger,
                SecurityEvent.LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "business_not_found"},
            )
            raise InvalidCredentialsError()

        credential = self._auth_db.get_credential(email)
        if credential is None:
            self._record_failure(ip_address, email)
            log_best_effort(
                self._security_logger,
                SecurityEvent.LOGIN_PASSWORD_NOT_SET,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise PasswordNotSetError()

        if credential.account_locked_until and not is_past(credential.account_locked_until):
            log_best_effort(
                self._security_logger,
                SecurityEvent.LOGIN_WHILE_LOCKED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise AccountLockedError(credential.account_locked_until)

        if not self._hasher.verify(password, credential.password_hash):
            self._record_failure(ip_address, email)
            attempts, locked_until = self._auth_db.record_failed_login(
                email,
                threshold=self._config.lockout_threshold,
                lock_minutes=self._config.lockout_minutes,
            )

            if locked_until is not None and not is_past(locked_until):
                logger.warning(f"Account locked after {attempts} failed logins: {email}")
                log_best_effort(
                    self._security_logger,
                    SecurityEvent.ACCOUNT_LOCKED,
                    email=email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"attempts": attempts},
                )
                raise AccountLockedError(locked_until)

            log_best_effort(
                self._security_logger,
                SecurityEvent.LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "bad_password", "attempts": attempts},
            )

            remaining = self._config.lockout_threshold - attempts
            if 0 < remaining <= self._config.lockout_warning_attempts:
                raise InvalidCredentialsError(remaining_attempts=remaining)
            raise InvalidCredentialsError()

        self._auth_db.reset_failed_logins(email)
        self._rate_limiter.reset(ip_address, email)

        session = self._create_session(email, ip_address, user_agent)
        log_best_effort(
            self._security_logger, SecurityEvent.LOGIN_SUCCEEDED, email=email, ip_address=ip_address
        )
        logger.info(f"Successful password login: {email}")

        return AuthenticatedOwner(business=business, session=session)

    def _create_session(
        self, email: str, ip_address: str | None, user_agent: str | None
    ) -> Session:
        session = self._session_manager.create_session(email, ip_address, user_agent)
        log_best_effort(
            self._security_logger,
            SecurityEvent.SESSION_CREATED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return session

    def request_magic_link(
        self,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> str:
        """
        Request a login link for email.

        The outcome is identical whether or not a business exists for the
        email: every request counts against the per-email budget and the same
        message comes back. Email delivery failures are logged, never raised.

        Returns:
            The message to show the user.

        Raises:
            ValidationError: Malformed email
            RateLimitedError: Too many requests for this email
        """
        email = normalize_email(email)

        self._magic_link_limiter.hit(email)

        business = self._auth_db.get_active_business_by_email(email)
        if business is None:
            logger.info(f"Magic link requested for unknown or inactive business: {email}")
            log_best_effort(
                self._security_logger,
                SecurityEvent.MAGIC_LINK_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "business_not_found"},
            )
            return self.MAGIC_LINK_SENT_MESSAGE

        now = now_utc()
        token = MagicLinkToken(
            token=secrets.token_urlsafe(32),
            email=email,
            created_at=now,
            expires_at=now + timedelta(minutes=self._config.magic_link_expiry_minutes),
            used=False,
        )
        self._auth_db.store_magic_link_token(token)

        log_best_effort(
            self._security_logger,
            SecurityEvent.MAGIC_LINK_REQUESTED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        link = f"{self._config.site_url}/api/auth/verify?token={token.token}"
        sent = self._mailer.send_magic_link(
            to=email,
            contact_name=business.contact_name,
            business_name=business.name,
            link=link,
            expires_in_minutes=self._config.magic_link_expiry_minutes,
        )

        if sent:
            log_best_effort(
                self._security_logger, SecurityEvent.MAGIC_LINK_SENT, email=email, ip_address=ip_address
            )
        else:
            logger.warning(f"Magic link email not delivered to {email}")

        if not self._config.is_production:
            devlinks_logger.info(f"Magic link for {email}: {link}")

        return self.MAGIC_LINK_SENT_MESSAGE

    def verify_magic_link(self, token: str | None) -> str | None:
        """
        Consume a magic link token.

        Returns:
            The bound email, or None if the token is missing, unknown, used
            or expired. Never raises.
        """
        if not token:
            return None

        try:
            email = self._auth_db.consume_magic_link_token(token)
        except Exception as e:
            logger.error(f"Magic link verification failed: {e}")
            return None

        if email is None:
            self._log_magic_link_failure(token)
            return None

        return email

    def _log_magic_link_failure(self, token: str) -> None:
        """Best-effort record of why a token was rejected."""
        try:
            existing = self._auth_db.get_magic_link_token(token)
            if existing is None:
                reason = "token_not_found"
            elif existing.used:
                reason = "token_already_used"
            else:
                reason = "token_expired"
            log_best_effort(
                self._security_logger,
                SecurityEvent.MAGIC_LINK_FAILED,
                email=existing.email if existing else None,
                details={"reason": reason},
            )
        except Exception as e:
            logger.error(f"Could not record magic link failure: {e}")

    def login_with_magic_link(
        self,
        token: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> Session | None:
        """Verify token and issue a session. None if the token is not valid."""
        email = self.verify_magic_link(token)
        if email is None:
            return None

        session = self._create_session(email, ip_address, user_agent)
        log_best_effort(
            self._security_logger,
            SecurityEvent.MAGIC_LINK_VERIFIED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return session

    def get_owner(self, session: Session) -> Business | None:
        """Active business behind an owner session, or None."""
        return self._auth_db.get_active_business_by_email(session.subject)

    def logout(self, session_token: str | None, ip_address: str | None) -> None:
        """
        Delete the session (logout).

        Safe to call with a missing or unknown token.
        """
        if not session_token:
            return

        session = self._session_manager.get_session(session_token)
        self._session_manager.delete_session(session_token)

        if session is not None:
            log_best_effort(
                self._security_logger,
                SecurityEvent.SESSION_REVOKED,
                email=session.subject,
                ip_address=ip_address,
            )
