"""Business owner gift card endpoints.

Behind OwnerAuthMiddleware: request.state.owner_email is always set here.
"""

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from core.exceptions import ValidationError
from core.services.redemption_service import RedemptionService


class RedeemRequest(BaseModel):
    gift_card_id: str = Field("", alias="giftCardId")
    amount: Any = None
    business_id: str = Field("", alias="businessId")

    model_config = {"populate_by_name": True}


class LookupRequest(BaseModel):
    code: str = ""
    business_id: str = Field("", alias="businessId")

    model_config = {"populate_by_name": True}


def create_owner_router(redemption_service: RedemptionService) -> APIRouter:
    """Create owner router with injected service."""
    router = APIRouter(tags=["owner"])

    @router.post("/gift-cards/redeem")
    async def redeem_gift_card(request: Request, body: RedeemRequest):
        if not body.gift_card_id or body.amount in (None, "") or not body.business_id:
            raise ValidationError("giftCardId, amount, and businessId are required")

        result = redemption_service.redeem(
            gift_card_id=body.gift_card_id,
            amount=body.amount,
            business_id=body.business_id,
            owner_email=request.state.owner_email,
        )
        return success_response(
            result.to_response(),
            request_id=getattr(request.state, "request_id", None),
        )

    @router.post("/gift-cards/lookup")
    async def lookup_gift_card(request: Request, body: LookupRequest):
        if not body.code or not body.business_id:
            raise ValidationError("Code and businessId are required")

        card = redemption_service.lookup(
            code=body.code,
            business_id=body.business_id,
            owner_email=request.state.owner_email,
        )
        return success_response(
            {"giftCard": card.model_dump(mode="json")},
            request_id=getattr(request.state, "request_id", None),
        )

    return router
