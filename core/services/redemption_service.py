"""
Gift card redemption for business owners.

A redemption subtracts an amount from a card's remaining balance:

    issued / partially_redeemed --(amount < balance)--> partially_redeemed
    issued / partially_redeemed --(amount = balance)--> redeemed

The balance update is a single conditional UPDATE, so two concurrent
redemptions can never take a card below zero.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from clients.email_client import Mailer
from clients.postgres_client import PostgresClient
from core.exceptions import (
    GiftCardAlreadyRedeemedError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from core.models import GiftCard, GiftCardCustomer, GiftCardStatus, RedemptionResult
from core.services.business_service import BusinessService, parse_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_CARD_COLUMNS = """
    g.id, g.code, g.business_id, g.customer_id, g.amount,
    COALESCE(g.remaining_balance, 0) AS remaining_balance, g.status,
    g.redeemed_at, g.redeemed_by, g.created_at, g.updated_at,
    c.email AS customer_email, c.name AS customer_name
"""


def parse_amount(value: Any) -> Decimal:
    """
    Parse a redemption amount.

    Accepts numbers and numeric strings with at most two decimal places.

    Raises:
        ValidationError: Missing, non-numeric, non-finite, non-positive or
            more precise than cents
    """
    if value is None or isinstance(value, bool):
        raise ValidationError("Invalid redemption amount")

    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Invalid redemption amount")
        cents = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError("Invalid redemption amount")

    if cents != amount:
        raise ValidationError("Amount can have at most two decimal places")

    return cents


def _card_from_row(row: dict) -> GiftCard:
    customer = None
    if row.get("customer_email") or row.get("customer_name"):
        customer = GiftCardCustomer(email=row.get("customer_email"), name=row.get("customer_name"))
    return GiftCard(
        id=row["id"],
        code=row["code"],
        business_id=row["business_id"],
        customer_id=row["customer_id"],
        amount=row["amount"],
        remaining_balance=row["remaining_balance"],
        status=row["status"],
        redeemed_at=row["redeemed_at"],
        redeemed_by=row["redeemed_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        customer=customer,
    )


class RedemptionService:
    """Service for gift card lookup and redemption."""

    def __init__(self, postgres: PostgresClient, businesses: BusinessService, mailer: Mailer):
        self.postgres = postgres
        self.businesses = businesses
        self.mailer = mailer

    def _get_card(self, gift_card_id: UUID, business_id: UUID) -> GiftCard:
        row = self.postgres.execute_single(
            f"""
            SELECT {_CARD_COLUMNS}
            FROM gift_cards g
            LEFT JOIN customers c ON c.id = g.customer_id
            WHERE g.id = %s AND g.business_id = %s
            """,
            (gift_card_id, business_id)
        )
        if row is None:
            raise NotFoundError("Gift card not found")
        return _card_from_row(row)

    @staticmethod
    def _check_redeemable(card: GiftCard, amount: Decimal) -> None:
        if card.is_fully_redeemed:
            raise GiftCardAlreadyRedeemedError("Gift card already redeemed")
        if amount > card.remaining_balance:
            raise InsufficientBalanceError("Amount exceeds remaining balance")

    def lookup(self, code: str, business_id: str | UUID, owner_email: str) -> GiftCard:
        """
        Find a card of the owner's business by code.

        Raises:
            ValidationError: Missing code
            NotFoundError: Business not owned by caller, or no such card
        """
        if not code or not code.strip():
            raise ValidationError("Code and businessId are required")

        business = self.businesses.get_business_for_owner(business_id, owner_email)

        row = self.postgres.execute_single(
            f"""
            SELECT {_CARD_COLUMNS}
            FROM gift_cards g
            LEFT JOIN customers c ON c.id = g.customer_id
            WHERE g.business_id = %s AND g.code = %s
            """,
            (business["id"], code.strip().upper())
        )
        if row is None:
            raise NotFoundError("Gift card not found")
        return _card_from_row(row)

    def redeem(
        self,
        gift_card_id: str | UUID,
        amount: Any,
        business_id: str | UUID,
        owner_email: str,
    ) -> RedemptionResult:
        """
        Redeem amount from a gift card of the owner's business.

        Args:
            gift_card_id: Card to redeem
            amount: Positive amount, at most two decimal places
            business_id: Business the card must belong to
            owner_email: Session email; must be the business contact email

        Returns:
            RedemptionResult with the new balance and status

        Raises:
            ValidationError: Bad amount
            NotFoundError: Business not owned by caller, or card not in it
            GiftCardAlreadyRedeemedError: Card balance is zero
            InsufficientBalanceError: Amount exceeds the balance
        """
        redemption_amount = parse_amount(amount)

        business = self.businesses.get_business_for_owner(business_id, owner_email)
        business_uuid = parse_id(business["id"], "Business")
        card_uuid = parse_id(gift_card_id, "Gift card")

        card = self._get_card(card_uuid, business_uuid)
        self._check_redeemable(card, redemption_amount)

        now = now_utc()
        rows = self.postgres.execute_returning(
            """
            UPDATE gift_cards
            SET remaining_balance = COALESCE(remaining_balance, 0) - %(amount)s,
                status = CASE
                    WHEN COALESCE(remaining_balance, 0) - %(amount)s = 0 THEN 'redeemed'
                    ELSE 'partially_redeemed'
                END,
                redeemed_at = CASE
                    WHEN COALESCE(remaining_balance, 0) - %(amount)s = 0 THEN %(now)s
                    ELSE redeemed_at
                END,
                redeemed_by = CASE
                    WHEN COALESCE(remaining_balance, 0) - %(amount)s = 0 THEN %(business_name)s
                    ELSE redeemed_by
                END,
                updated_at = %(now)s
            WHERE id = %(id)s
              AND business_id = %(business_id)s
              AND COALESCE(remaining_balance, 0) > 0
              AND COALESCE(remaining_balance, 0) >= %(amount)s
            RETURNING remaining_balance, status
            """,
            {
                "amount": redemption_amount,
                "now": now,
                "business_name": business["name"],
                "id": card_uuid,
                "business_id": business_uuid,
            }
        )

        if not rows:
            # Balance changed since it was read; report against the current state
            current = self._get_card(card_uuid, business_uuid)
            self._check_redeemable(current, redemption_amount)
            raise InsufficientBalanceError("Amount exceeds remaining balance")

        result = RedemptionResult(
            gift_card_id=card_uuid,
            redeemed_amount=redemption_amount,
            remaining_balance=Decimal(str(rows[0]["remaining_balance"])),
            status=GiftCardStatus(rows[0]["status"]),
        )

        logger.info(
            f"Redeemed {redemption_amount} from gift card {card_uuid}: "
            f"{result.remaining_balance} left ({result.status.value})"
        )

        self._send_confirmation(card, business["name"], result)
        return result

    def _send_confirmation(self, card: GiftCard, business_name: str, result: RedemptionResult) -> None:
        """Best-effort receipt to the card's customer."""
        if card.customer is None or not card.customer.email:
            return
        try:
            self.mailer.send_redemption_confirmation(
                to=card.customer.email,
                customer_name=card.customer.name,
                business_name=business_name,
                redeemed_amount=result.redeemed_amount,
                remaining_balance=result.remaining_balance,
            )
        except Exception:
            logger.exception(f"Error sending redemption email for gift card {card.id}")
