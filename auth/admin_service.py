"""Administrator authentication and admin-initiated credential resets."""

import logging

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import AccountLockedError, InvalidCredentialsError
from auth.passwords import PasswordHasher, generate_secure_password
from auth.rate_limiter import RateLimiter
from auth.service import normalize_email
from auth.session import SessionManager
from auth.types import AdminUser, AuthenticatedAdmin, Session
from core.audit import AuditAction, AuditLogger, AuditStatus
from core.exceptions import ValidationError
from utils.timezone import is_past

logger = logging.getLogger(__name__)


class AdminAuthService:
    """
    Admin login, logout and business credential resets.

    Admin logins use their own rate limiter (stricter budget, separate
    keys) and their own lockout policy; neither is shared with owners.
    """

    RESET_ACTIONS = {"reset_password"}

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        rate_limiter: RateLimiter,
        audit: AuditLogger,
        hasher: PasswordHasher,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter
        self._audit = audit
        self._hasher = hasher

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager

    def _fail(
        self,
        username: str,
        ip_address: str | None,
        user_agent: str | None,
        reason: str,
        admin: AdminUser | None = None,
    ) -> None:
        self._rate_limiter.record_failure(ip_address, username)
        logger.warning(f"Failed admin login attempt: {username} ({reason})")
        self._audit.log_action(
            action=AuditAction.LOGIN_FAILED,
            resource_type="admin_session",
            resource_name=username,
            admin_id=admin.id if admin else None,
            ip_address=ip_address,
            user_agent=user_agent,
            status=AuditStatus.FAILED,
            error_message=reason,
        )

    def login(
        self,
        username: str,
        password: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedAdmin:
        """
        Log an administrator in.

        Raises:
            ValidationError: Missing username or password
            RateLimitedError: Admin budget used up for this IP or username
            InvalidCredentialsError: Unknown, inactive or wrong password
            AccountLockedError: Admin account is locked
        """
        if not username or not password:
            raise ValidationError("Username and password are required")

        username = username.strip().lower()

        # Checked before any lookup so a limited client gets no timing signal
        self._rate_limiter.check(ip_address, username)

        admin = self._auth_db.get_admin_by_username(username)
        if admin is None or not admin.is_active:
            self._fail(username, ip_address, user_agent, "unknown_or_inactive", admin)
            raise InvalidCredentialsError()

        if admin.account_locked_until and not is_past(admin.account_locked_until):
            self._fail(username, ip_address, user_agent, "account_locked", admin)
            raise AccountLockedError(admin.account_locked_until)

        if not self._hasher.verify(password, admin.password_hash):
            self._fail(username, ip_address, user_agent, "bad_password", admin)
            _, locked_until = self._auth_db.record_admin_failed_login(
                admin.id,
                threshold=self._config.admin_lockout_threshold,
                lock_minutes=self._config.admin_lockout_minutes,
            )
            if locked_until is not None and not is_past(locked_until):
                raise AccountLockedError(locked_until)
            raise InvalidCredentialsError()

        self._auth_db.record_admin_login(admin.id)
        self._rate_limiter.reset(ip_address, username)

        session = self._session_manager.create_session(str(admin.id), ip_address, user_agent)

        self._audit.log_action(
            action=AuditAction.LOGIN,
            resource_type="admin_session",
            resource_name=username,
            admin_id=admin.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"Successful admin login: {username}")

        return AuthenticatedAdmin(admin=admin, session=session)

    def get_admin(self, session: Session) -> AdminUser | None:
        """Active admin behind a session, or None."""
        admin = self._auth_db.get_admin_by_id(session.subject)
        if admin is None or not admin.is_active:
            return None
        return admin

    def logout(
        self,
        session_token: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        """Delete the admin session. Safe with a missing or unknown token."""
        if not session_token:
            return

        session = self._session_manager.get_session(session_token)
        self._session_manager.delete_session(session_token)

        if session is not None:
            self._audit.log_action(
                action=AuditAction.LOGOUT,
                resource_type="admin_session",
                admin_id=session.subject,
                ip_address=ip_address,
                user_agent=user_agent,
            )

    def reset_business_credentials(
        self,
        email: str,
        action: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Give a business owner a fresh temporary password.

        Clears any lockout. The temporary password is returned once and not
        stored anywhere in plain text.

        Raises:
            ValidationError: Missing email or unknown action
        """
        email = normalize_email(email)
        if action not in self.RESET_ACTIONS:
            raise ValidationError("Invalid action")

        temp_password = generate_secure_password()
        self._auth_db.upsert_credential(email, self._hasher.hash(temp_password))

        self._audit.log_action(
            action=AuditAction.RESET_PASSWORD,
            resource_type="business_credentials",
            resource_name=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"Admin reset credentials for {email}")

        return temp_password
