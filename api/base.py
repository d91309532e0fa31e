"""Unified API response format and error codes."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    Fields of a dict payload are also copied to the top level, so clients
    can read e.g. body.remainingBalance as well as body.data.remainingBalance.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta

    model_config = {"extra": "allow"}


def _meta(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def _top_level(data: Any) -> dict[str, Any]:
    """Payload fields to mirror at the top level. Envelope keys always win."""
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if k not in APIResponse.model_fields}


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=_meta(request_id),
        **_top_level(data),
    )


def error_response(
    code: str,
    message: str,
    data: Any | None = None,
    request_id: str | None = None,
) -> APIResponse:
    """Create an error response. data carries structured details such as validation errors."""
    return APIResponse(
        success=False,
        data=data,
        error=APIError(code=code, message=message),
        meta=_meta(request_id),
        **_top_level(data),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication & Authorization
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    PASSWORD_NOT_SET = "PASSWORD_NOT_SET"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    CSRF_INVALID = "CSRF_INVALID"
    RATE_LIMITED = "RATE_LIMITED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    WEAK_PASSWORD = "WEAK_PASSWORD"

    # Gift cards
    GIFT_CARD_ALREADY_REDEEMED = "GIFT_CARD_ALREADY_REDEEMED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
