"""
Business service for owner scoping and admin bulk deletion.

Owners only ever see a business whose contact email matches their session
email. A business that exists but belongs to someone else is reported as
not found.
"""

import logging
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.audit import AuditAction, AuditLogger, AuditStatus
from core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def parse_id(value: str | UUID | None, label: str) -> UUID:
    """
    Parse an ID from request input.

    Raises:
        NotFoundError: If value is not a UUID (nothing can match it)
    """
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found")


class BusinessService:
    """Service for business lookups and deletion."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def get_business_for_owner(self, business_id: str | UUID, owner_email: str) -> dict:
        """
        Get a business the session owner controls.

        Returns:
            Business row (id, name, contact_email, contact_name, status)

        Raises:
            NotFoundError: Unknown business or contact email mismatch
        """
        business_uuid = parse_id(business_id, "Business")

        row = self.postgres.execute_single(
            """
            SELECT id, name, contact_email, contact_name, status
            FROM businesses
            WHERE id = %s
            """,
            (business_uuid,)
        )

        if (
            row is None
            or not row["contact_email"]
            or row["contact_email"].lower() != (owner_email or "").lower()
        ):
            raise NotFoundError("Not found")

        return row

    def delete_businesses(
        self,
        business_ids: list[str],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        """
        Delete businesses with their gift cards, orders and credentials.

        Dependent rows go first; a failure there is logged and the business
        delete still runs. One audit entry is written per business.

        Returns:
            Number of businesses deleted

        Raises:
            ValidationError: If business_ids is empty or not a list
        """
        if not business_ids or not isinstance(business_ids, list):
            raise ValidationError("Business IDs are required")

        ids = [str(parse_id(business_id, "Business")) for business_id in business_ids]

        emails = [
            row["contact_email"]
            for row in self.postgres.execute(
                "SELECT contact_email FROM businesses WHERE id = ANY(%s::uuid[])",
                (ids,)
            )
            if row["contact_email"]
        ]

        for table, column, values in (
            ("gift_cards", "business_id", ids),
            ("orders", "business_id", ids),
        ):
            try:
                self.postgres.execute(
                    f"DELETE FROM {table} WHERE {column} = ANY(%s::uuid[])",
                    (values,)
                )
            except Exception as e:
                logger.warning(f"Failed to delete {table} for businesses {ids}: {e}")

        if emails:
            try:
                self.postgres.execute(
                    "DELETE FROM business_credentials WHERE lower(email) = ANY(%s)",
                    ([email.lower() for email in emails],)
                )
            except Exception as e:
                logger.warning(f"Failed to delete credentials for businesses {ids}: {e}")

        try:
            deleted = self.postgres.execute_returning(
                "DELETE FROM businesses WHERE id = ANY(%s::uuid[]) RETURNING id, name",
                (ids,)
            )
        except Exception as e:
            for business_id in ids:
                self.audit.log_action(
                    action=AuditAction.DELETE,
                    resource_type="business",
                    resource_id=business_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    status=AuditStatus.FAILED,
                    error_message=str(e),
                )
            raise

        names = {str(row["id"]): row["name"] for row in deleted}
        for business_id in ids:
            self.audit.log_action(
                action=AuditAction.DELETE,
                resource_type="business",
                resource_id=business_id,
                resource_name=names.get(business_id),
                ip_address=ip_address,
                user_agent=user_agent,
            )

        logger.info(f"Deleted {len(deleted)} businesses")
        return len(deleted)
