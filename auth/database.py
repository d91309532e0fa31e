"""Database operations for authentication.

Tables: businesses, business_credentials, admin_users, magic_links,
password_reset_tokens, auth_sessions, admin_sessions.

These are read before any session exists, so every query here is keyed by
email, username or token rather than by the authenticated caller.
"""

from datetime import datetime, timedelta
from typing import Any, Dict

from clients.postgres_client import PostgresClient
from auth.types import (
    AdminUser,
    Business,
    Credential,
    MagicLinkToken,
    PasswordResetToken,
    Session,
)
from utils.timezone import as_utc, now_utc

# Session kind -> (table, column holding the session subject)
SESSION_TABLES = {
    "owner": ("auth_sessions", "email"),
    "admin": ("admin_sessions", "admin_user_id"),
}

# Shared by owner and admin lockout. A lock that has already run out is
# treated as a fresh start so the counter restarts at 1.
_FAILED_LOGIN_SET = """
    SET failed_login_attempts = CASE
            WHEN account_locked_until IS NOT NULL AND account_locked_until <= %(now)s THEN 1
            ELSE COALESCE(failed_login_attempts, 0) + 1
        END,
        account_locked_until = CASE
            WHEN account_locked_until IS NOT NULL AND account_locked_until <= %(now)s THEN NULL
            WHEN COALESCE(failed_login_attempts, 0) + 1 >= %(threshold)s THEN %(locked_until)s
            ELSE account_locked_until
        END,
        last_failed_login = %(now)s,
        updated_at = %(now)s
"""


def _session_table(kind: str) -> tuple[str, str]:
    if kind not in SESSION_TABLES:
        raise ValueError(f"Unknown session kind: {kind}")
    return SESSION_TABLES[kind]


def _optional_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


class AuthDatabase:
    """Database operations for authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # Businesses

    def get_active_business_by_email(self, email: str) -> Business | None:
        """Active business whose contact email matches (case-insensitive)."""
        row = self._db.execute_single(
            """SELECT id, name, contact_email, contact_name, status
               FROM businesses
               WHERE contact_email ILIKE %s AND status = 'active'
               LIMIT 1""",
            (email,),
        )
        if row is None:
            return None
        return Business.model_validate(row)

    # Business owner credentials

    def get_credential(self, email: str) -> Credential | None:
        row = self._db.execute_single(
            """SELECT email, password_hash, failed_login_attempts,
                      account_locked_until, password_changed_at
               FROM business_credentials WHERE email = lower(%s)""",
            (email,),
        )
        if row is None:
            return None
        return Credential(
            email=row["email"],
            password_hash=row["password_hash"],
            failed_login_attempts=row["failed_login_attempts"] or 0,
            account_locked_until=_optional_utc(row["account_locked_until"]),
            password_changed_at=_optional_utc(row["password_changed_at"]),
        )

    def record_failed_login(
        self, email: str, threshold: int, lock_minutes: int
    ) -> tuple[int, datetime | None]:
        """
        Atomically count a failed password and lock at the threshold.

        Runs as one UPDATE so concurrent failures cannot both read the same
        count and skip the lock.

        Returns:
            (failed_login_attempts, account_locked_until) after the update.
            (0, None) if no credential exists.
        """
        now = now_utc()
        rows = self._db.execute_returning(
            f"""UPDATE business_credentials
                {_FAILED_LOGIN_SET}
                WHERE email = lower(%(email)s)
                RETURNING failed_login_attempts, account_locked_until""",
            {
                "now": now,
                "threshold": threshold,
                "locked_until": now + timedelta(minutes=lock_minutes),
                "email": email,
            },
        )
        if not rows:
            return 0, None
        return rows[0]["failed_login_attempts"], _optional_utc(rows[0]["account_locked_until"])

    def reset_failed_logins(self, email: str) -> None:
        """Clear the failure counter and any lock after a successful login."""
        self._db.execute_returning(
            """UPDATE business_credentials
               SET failed_login_attempts = 0, account_locked_until = NULL, updated_at = %s
               WHERE email = lower(%s)
               RETURNING email""",
            (now_utc(), email),
        )

    def upsert_credential(self, email: str, password_hash: str) -> None:
        """Set the password for email, clearing lockout state and stamping password_changed_at."""
        now = now_utc()
        self._db.execute_returning(
            """INSERT INTO business_credentials
                   (email, password_hash, failed_login_attempts, account_locked_until,
                    password_changed_at, updated_at)
               VALUES (lower(%(email)s), %(hash)s, 0, NULL, %(now)s, %(now)s)
               ON CONFLICT (email) DO UPDATE SET
                   password_hash = EXCLUDED.password_hash,
                   failed_login_attempts = 0,
                   account_locked_until = NULL,
                   password_changed_at = EXCLUDED.password_changed_at,
                   updated_at = EXCLUDED.updated_at
               RETURNING email""",
            {"email": email, "hash": password_hash, "now": now},
        )

    # Admin users

    def _admin_from_row(self, row: Dict[str, Any]) -> AdminUser:
        return AdminUser(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            full_name=row["full_name"],
            role=row["role"] or "admin",
            password_hash=row["password_hash"],
            is_active=bool(row["is_active"]),
            failed_login_attempts=row["failed_login_attempts"] or 0,
            account_locked_until=_optional_utc(row["account_locked_until"]),
        )

    def get_admin_by_username(self, username: str) -> AdminUser | None:
        row = self._db.execute_single(
            """SELECT id, username, email, full_name, role, password_hash, is_active,
                      failed_login_attempts, account_locked_until
               FROM admin_users WHERE username = %s""",
            (username,),
        )
        if row is None:
            return None
        return self._admin_from_row(row)

    def get_admin_by_id(self, admin_id: str) -> AdminUser | None:
        row = self._db.execute_single(
            """SELECT id, username, email, full_name, role, password_hash, is_active,
                      failed_login_attempts, account_locked_until
               FROM admin_users WHERE id = %s""",
            (str(admin_id),),
        )
        if row is None:
            return None
        return self._admin_from_row(row)

    def record_admin_failed_login(
        self, admin_id: str, threshold: int, lock_minutes: int
    ) -> tuple[int, datetime | None]:
        """Admin counterpart of record_failed_login with its own policy numbers."""
        now = now_utc()
        rows = self._db.execute_returning(
            f"""UPDATE admin_users
                {_FAILED_LOGIN_SET}
                WHERE id = %(admin_id)s
                RETURNING failed_login_attempts, account_locked_until""",
            {
                "now": now,
                "threshold": threshold,
                "locked_until": now + timedelta(minutes=lock_minutes),
                "admin_id": str(admin_id),
            },
        )
        if not rows:
            return 0, None
        return rows[0]["failed_login_attempts"], _optional_utc(rows[0]["account_locked_until"])

    def record_admin_login(self, admin_id: str) -> None:
        """Reset failures and stamp last_login_at."""
        now = now_utc()
        self._db.execute_returning(
            """UPDATE admin_users
               SET failed_login_attempts = 0, account_locked_until = NULL,
                   last_login_at = %s, updated_at = %s
               WHERE id = %s
               RETURNING id""",
            (now, now, str(admin_id)),
        )

    # Magic links

    def store_magic_link_token(self, token: MagicLinkToken) -> None:
        self._db.execute_returning(
            """INSERT INTO magic_links (token, email, created_at, expires_at, used)
               VALUES (%s, lower(%s), %s, %s, %s)
               RETURNING token""",
            (token.token, token.email, token.created_at, token.expires_at, token.used),
        )

    def get_magic_link_token(self, token: str) -> MagicLinkToken | None:
        row = self._db.execute_single(
            """SELECT token, email, created_at, expires_at, used
               FROM magic_links WHERE token = %s""",
            (token,),
        )
        if row is None:
            return None
        return MagicLinkToken(
            token=row["token"],
            email=row["email"],
            created_at=as_utc(row["created_at"]),
            expires_at=as_utc(row["expires_at"]),
            used=row["used"],
        )

    def consume_magic_link_token(self, token: str) -> str | None:
        """
        Mark an unused, unexpired token used in a single statement.

        Returns:
            The bound email, or None if the token is unknown, used or expired.
            Two concurrent calls for one token cannot both succeed.
        """
        now = now_utc()
        row = self._db.execute_single(
            """UPDATE magic_links
               SET used = true, used_at = %s
               WHERE token = %s AND used = false AND expires_at > %s
               RETURNING email""",
            (now, token, now),
        )
        return row["email"] if row else None

    # Password reset tokens

    def store_password_reset_token(self, token: PasswordResetToken) -> None:
        self._db.execute_returning(
            """INSERT INTO password_reset_tokens
                   (token, email, created_at, expires_at, used, ip_address)
               VALUES (%s, lower(%s), %s, %s, %s, %s)
               RETURNING token""",
            (
                token.token,
                token.email,
                token.created_at,
                token.expires_at,
                token.used,
                token.ip_address,
            ),
        )

    def get_password_reset_token(self, token: str) -> PasswordResetToken | None:
        row = self._db.execute_single(
            """SELECT token, email, created_at, expires_at, used, used_at, ip_address
               FROM password_reset_tokens WHERE token = %s""",
            (token,),
        )
        if row is None:
            return None
        return PasswordResetToken(
            token=row["token"],
            email=row["email"],
            created_at=as_utc(row["created_at"]),
            expires_at=as_utc(row["expires_at"]),
            used=row["used"],
            used_at=_optional_utc(row["used_at"]),
            ip_address=row["ip_address"],
        )

    def consume_password_reset_token(self, token: str, ip_address: str | None) -> str | None:
        """Single-use consumption, recording who used it. Returns the bound email or None."""
        now = now_utc()
        row = self._db.execute_single(
            """UPDATE password_reset_tokens
               SET used = true, used_at = %s, ip_address = COALESCE(%s, ip_address)
               WHERE token = %s AND used = false AND expires_at > %s
               RETURNING email""",
            (now, ip_address, token, now),
        )
        return row["email"] if row else None

    # Sessions

    def insert_session(self, kind: str, session: Session) -> None:
        table, subject_column = _session_table(kind)
        self._db.execute_returning(
            f"""INSERT INTO {table}
                    (session_token, {subject_column}, created_at, expires_at,
                     last_activity, ip_address, user_agent)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING session_token""",
            (
                session.token,
                session.subject,
                session.created_at,
                session.expires_at,
                session.created_at,
                session.ip_address,
                session.user_agent,
            ),
        )

    def get_session(self, kind: str, token: str) -> Session | None:
        table, subject_column = _session_table(kind)
        row = self._db.execute_single(
            f"""SELECT session_token, {subject_column} AS subject, created_at, expires_at,
                       ip_address, user_agent
                FROM {table} WHERE session_token = %s""",
            (token,),
        )
        if row is None:
            return None
        return Session(
            token=row["session_token"],
            subject=str(row["subject"]),
            created_at=as_utc(row["created_at"]),
            expires_at=as_utc(row["expires_at"]),
            ip_address=str(row["ip_address"]) if row["ip_address"] else None,
            user_agent=row["user_agent"],
        )

    def delete_session(self, kind: str, token: str) -> bool:
        """Returns True if a session row was removed."""
        table, _ = _session_table(kind)
        rows = self._db.execute_returning(
            f"DELETE FROM {table} WHERE session_token = %s RETURNING session_token",
            (token,),
        )
        return len(rows) > 0
