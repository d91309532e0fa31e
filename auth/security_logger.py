"""Security event logging for the business owner auth trail.

Append-only log to the security_events table.
"""

import logging
from enum import Enum
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_PASSWORD_NOT_SET = "login_password_not_set"
    ACCOUNT_LOCKED = "account_locked"
    LOGIN_WHILE_LOCKED = "login_while_locked"
    MAGIC_LINK_REQUESTED = "magic_link_requested"
    MAGIC_LINK_SENT = "magic_link_sent"
    MAGIC_LINK_VERIFIED = "magic_link_verified"
    MAGIC_LINK_FAILED = "magic_link_failed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    SESSION_CREATED = "session_created"
    SESSION_REVOKED = "session_revoked"
    RATE_LIMITED = "rate_limited"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, email, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )


def log_best_effort(security_logger: SecurityLogger, event: SecurityEvent, **fields: Any) -> None:
    """
    Log event; a failed write goes to the application log instead of raising.

    Auth flows log through this, so an event row that cannot be written never
    fails a login whose session or token change has already committed.
    """
    try:
        security_logger.log(event, **fields)
    except Exception as e:
        logger.error(f"Failed to record security event {event.value}: {e}")
