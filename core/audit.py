"""
Admin audit trail.

Every admin action (logins, credential resets, deletions) is recorded in
admin_audit_logs. The log is:
- Append-only (entries never modified or deleted)
- Admin-attributed (who made the change, from which IP)
- Non-blocking (a failed audit write is logged, never raised)
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.user_context import get_current_admin_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Type of admin action."""

    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    RESET_PASSWORD = "reset_password"
    DELETE = "delete"


class AuditStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"


class AuditLogger:
    """
    Writes admin_audit_logs entries.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_action(
            action=AuditAction.DELETE,
            resource_type="business",
            resource_id=business.id,
            resource_name=business.name,
            ip_address=request.state.client_ip,
        )

    admin_id defaults to the admin bound by utils.user_context.admin_context.
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_action(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID | str | None = None,
        resource_name: str | None = None,
        details: dict[str, Any] | None = None,
        admin_id: UUID | str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        error_message: str | None = None,
    ) -> bool:
        """
        Record one admin action.

        Returns:
            True if the entry was written. Failures are logged, not raised,
            so auditing never blocks the action being audited.
        """
        if admin_id is None:
            admin_id = get_current_admin_id()

        try:
            self.postgres.execute(
                """
                INSERT INTO admin_audit_logs
                    (admin_user_id, action_type, resource_type, resource_id, resource_name,
                     details, ip_address, user_agent, status, error_message, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    str(admin_id) if admin_id else None,
                    action.value,
                    resource_type,
                    str(resource_id) if resource_id else None,
                    resource_name,
                    Json(details) if details else None,
                    ip_address,
                    user_agent,
                    status.value,
                    error_message,
                    now_utc(),
                ),
            )
        except Exception as e:
            logger.error(f"Failed to write admin audit entry ({action.value} {resource_type}): {e}")
            return False

        return True
