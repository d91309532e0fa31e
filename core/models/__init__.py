"""Core domain models."""

from core.models.gift_card import GiftCard, GiftCardCustomer, GiftCardStatus, RedemptionResult

__all__ = [
    "GiftCard", "GiftCardCustomer", "GiftCardStatus", "RedemptionResult",
]
