"""Tests for gift card models."""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from core.models import GiftCard, GiftCardStatus, RedemptionResult


def _card(**overrides):
    fields = {
        "id": uuid4(),
        "code": "GIFT-1234",
        "business_id": uuid4(),
        "amount": Decimal("50.00"),
        "remaining_balance": Decimal("50.00"),
        "status": "issued",
    }
    fields.update(overrides)
    return GiftCard(**fields)


class TestGiftCard:

    def test_status_parsed(self):
        assert _card().status == GiftCardStatus.ISSUED

    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            _card(status="lost")

    def test_rejects_negative_balance(self):
        with pytest.raises(ValidationError):
            _card(remaining_balance=Decimal("-1"))

    def test_fully_redeemed(self):
        assert _card(remaining_balance=Decimal("0")).is_fully_redeemed
        assert not _card().is_fully_redeemed

    def test_json_dump(self):
        dumped = _card().model_dump(mode="json")
        assert dumped["status"] == "issued"
        assert dumped["customer"] is None


class TestRedemptionResult:

    def test_response_shape(self):
        result = RedemptionResult(
            gift_card_id=uuid4(),
            redeemed_amount=Decimal("50.00"),
            remaining_balance=Decimal("0.00"),
            status=GiftCardStatus.REDEEMED,
        )
        assert result.to_response() == {"remainingBalance": 0.0, "status": "redeemed"}
