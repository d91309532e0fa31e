"""Gift card domain models.

Amounts are Decimal currency with two places. The balance invariant
0 <= remaining_balance <= amount holds for every stored card.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class GiftCardStatus(str, Enum):
    """Gift card lifecycle status."""

    ISSUED = "issued"
    PARTIALLY_REDEEMED = "partially_redeemed"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class GiftCardCustomer(BaseModel):
    """Purchaser of a gift card, joined from customers."""

    email: str | None = None
    name: str | None = None


class GiftCard(BaseModel):
    """Gift card as stored, with its customer."""

    id: UUID
    code: str
    business_id: UUID
    customer_id: UUID | None = None
    amount: Decimal = Field(..., ge=0)
    remaining_balance: Decimal = Field(..., ge=0)
    status: GiftCardStatus
    redeemed_at: datetime | None = None
    redeemed_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    customer: GiftCardCustomer | None = None

    model_config = {"from_attributes": True}

    @property
    def is_fully_redeemed(self) -> bool:
        return self.remaining_balance <= 0


class RedemptionResult(BaseModel):
    """Outcome of a successful redemption."""

    gift_card_id: UUID
    redeemed_amount: Decimal
    remaining_balance: Decimal
    status: GiftCardStatus

    def to_response(self) -> dict:
        return {
            "remainingBalance": float(self.remaining_balance),
            "status": self.status.value,
        }
