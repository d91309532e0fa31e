"""Domain exceptions shared by every service.

Each maps to one HTTP status in api/errors.py. `details` is optional
structured data returned to the client next to the message.
"""

from typing import Any


class DomainError(Exception):
    """Base class for expected, client-facing failures."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(DomainError):
    """Input is missing or malformed."""


class NotFoundError(DomainError):
    """
    Resource does not exist for this caller.

    Also used for resources that exist but belong to another tenant, so the
    response never confirms their existence.
    """


class GiftCardAlreadyRedeemedError(ValidationError):
    """Card has no remaining balance."""


class InsufficientBalanceError(ValidationError):
    """Requested amount exceeds the card's remaining balance."""
