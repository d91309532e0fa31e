"""Session token lifecycle management.

Sessions are rows in auth_sessions (business owners) or admin_sessions
(administrators). Token format is cryptographically random
(secrets.token_urlsafe). The browser only ever holds the token, in an
http-only cookie.
"""

import logging
import secrets
from datetime import timedelta

from pydantic import BaseModel
from starlette.responses import Response

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import SessionExpiredError
from auth.types import Session
from utils.timezone import is_past, now_utc

logger = logging.getLogger(__name__)

OWNER_COOKIE_NAME = "gifty_session"
ADMIN_COOKIE_NAME = "gifty_admin_session"

# Past date used when clearing cookies, for browsers that ignore Max-Age=0
COOKIE_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"


class SessionPolicy(BaseModel):
    """Which table and cookie a SessionManager works with, and for how long."""

    kind: str  # "owner" | "admin", see auth.database.SESSION_TABLES
    cookie_name: str
    max_age_seconds: int
    secure: bool = False

    @classmethod
    def owner(cls, config: AuthConfig) -> "SessionPolicy":
        return cls(
            kind="owner",
            cookie_name=OWNER_COOKIE_NAME,
            max_age_seconds=config.owner_session_days * 24 * 3600,
            secure=config.is_production,
        )

    @classmethod
    def admin(cls, config: AuthConfig) -> "SessionPolicy":
        return cls(
            kind="admin",
            cookie_name=ADMIN_COOKIE_NAME,
            max_age_seconds=config.admin_session_hours * 3600,
            secure=config.is_production,
        )


class SessionManager:
    """
    Session token lifecycle management.

    One instance per policy: owner sessions and admin sessions never share
    a table or a cookie.
    """

    def __init__(self, db: AuthDatabase, policy: SessionPolicy):
        self._db = db
        self._policy = policy

    @property
    def policy(self) -> SessionPolicy:
        return self._policy

    @property
    def cookie_name(self) -> str:
        return self._policy.cookie_name

    def create_session(
        self,
        subject: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        """Create and persist a new session for subject."""
        now = now_utc()
        session = Session(
            token=secrets.token_urlsafe(32),
            subject=subject,
            created_at=now,
            expires_at=now + timedelta(seconds=self._policy.max_age_seconds),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._db.insert_session(self._policy.kind, session)
        return session

    def get_session(self, token: str | None) -> Session | None:
        """
        Return the session for token, or None if missing, unknown or expired.

        Expired rows are deleted when encountered.
        """
        if not token:
            return None

        session = self._db.get_session(self._policy.kind, token)
        if session is None:
            return None

        if is_past(session.expires_at):
            self._db.delete_session(self._policy.kind, token)
            return None

        return session

    def validate_session(self, token: str | None) -> Session:
        """
        Like get_session but raises.

        Raises:
            SessionExpiredError: If the token is missing, unknown or expired
        """
        session = self.get_session(token)
        if session is None:
            raise SessionExpiredError("Session not found or expired")
        return session

    def delete_session(self, token: str | None) -> None:
        """Delete session (logout). Safe to call with a missing or unknown token."""
        if not token:
            return
        self._db.delete_session(self._policy.kind, token)

    def set_cookie(self, response: Response, session: Session) -> None:
        response.set_cookie(
            key=self._policy.cookie_name,
            value=session.token,
            max_age=self._policy.max_age_seconds,
            httponly=True,
            secure=self._policy.secure,
            samesite="lax",
            path="/",
        )

    def clear_cookie(self, response: Response) -> None:
        """Overwrite the cookie with an empty, already-expired one."""
        response.set_cookie(
            key=self._policy.cookie_name,
            value="",
            max_age=0,
            expires=COOKIE_EPOCH,
            httponly=True,
            secure=self._policy.secure,
            samesite="lax",
            path="/",
        )
